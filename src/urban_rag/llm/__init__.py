from .llm_client import LLMClient, OpenAIClient, AnthropicClient, create_llm_client

__all__ = ['LLMClient', 'OpenAIClient', 'AnthropicClient', 'create_llm_client']
