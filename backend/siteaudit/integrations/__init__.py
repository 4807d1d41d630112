"""
External service integrations.

- llm: LLM client used by the page analyzer (supports local/OpenAI/Anthropic)
"""
