"""Streaming text-generation client for the writing assistant."""

from writer_llm.llm import TextGenerator  # noqa: F401
