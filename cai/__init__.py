"""
cai: The fastest CLI tool for prompting LLMs

A command-line dispatcher that sends a prompt to one or more LLM providers
(Groq, Cerebras, DeepSeek, OpenAI, Anthropic, Google, xAI, Ollama, Llamafile),
normalizes their request/response shapes and prints a unified result.
"""

__version__ = "0.1.0"
