"""Review prompt assembly and LLM review call (consumes a ContextBundle)."""

from diffscope.review.prompt import ReviewPrompt, build_review_prompt, review

__all__ = ["ReviewPrompt", "build_review_prompt", "review"]
