"""Input/Output Guard.

Validation and sanitization applied to data bound for display or LLM prompts:
  - Combinator schema validators with path-qualified errors
  - HTML escaping and input sanitization
  - Prompt-injection heuristics
  - Sliding-window rate limiting
"""
