import os
from typing import Dict
from abc import ABC, abstractmethod

from urban_rag.errors import ConfigError, PipelineError
from urban_rag.utils.logger import get_logger

logger = get_logger("llm")


class LLMClient(ABC):
  """Base class for LLM clients"""

  @abstractmethod
  def generate(self, prompt: str, system: str = None, max_tokens: int = None) -> str:
    """Simple text generation"""
    pass


def _api_key(api_config: Dict) -> str:
  """Get API key from environment"""
  api_key_env_var = api_config['api_key_env']
  api_key = os.environ.get(api_key_env_var)
  if not api_key:
    raise ConfigError(f"Missing {api_key_env_var} environment variable")
  return api_key


class OpenAIClient(LLMClient):
  """OpenAI API client"""

  def __init__(self, config: Dict, client=None):
    from openai import OpenAI

    api_config = config['models']['api']
    self.client = client or OpenAI(api_key=_api_key(api_config))
    self.model = api_config['model']
    self.max_tokens = api_config.get('max_tokens', 2000)
    self.temperature = api_config.get('temperature', 0.1)

  def generate(self, prompt: str, system: str = None, max_tokens: int = None) -> str:
    messages = [{"role": "user", "content": prompt}]
    if system:
      messages.insert(0, {"role": "system", "content": system})
    try:
      response = self.client.chat.completions.create(
        model=self.model,
        messages=messages,
        max_tokens=max_tokens or self.max_tokens,
        temperature=self.temperature
      )
    except Exception as e:
      logger.error(f"✗ chat completion failed: {e}")
      raise PipelineError(f"OpenAI completion failed: {e}") from e
    return response.choices[0].message.content or ""


class AnthropicClient(LLMClient):
  """Anthropic API client"""

  def __init__(self, config: Dict, client=None):
    import anthropic

    api_config = config['models']['api']
    self.client = client or anthropic.Anthropic(api_key=_api_key(api_config))
    self.model = api_config['model']
    self.max_tokens = api_config.get('max_tokens', 2000)
    self.temperature = api_config.get('temperature', 0.1)

  def generate(self, prompt: str, system: str = None, max_tokens: int = None) -> str:
    kwargs = {}
    if system:
      kwargs["system"] = system
    try:
      response = self.client.messages.create(
        model=self.model,
        messages=[{"role": "user", "content": prompt}],
        max_tokens=max_tokens or self.max_tokens,
        temperature=self.temperature,
        **kwargs
      )
    except Exception as e:
      logger.error(f"✗ message creation failed: {e}")
      raise PipelineError(f"Anthropic completion failed: {e}") from e
    return "".join(block.text for block in response.content if block.type == "text")


def create_llm_client(config: Dict) -> LLMClient:
  """Factory function to create the appropriate LLM client"""
  provider = config['models']['api']['provider']

  if provider == "openai":
    return OpenAIClient(config)
  elif provider == "anthropic":
    return AnthropicClient(config)
  else:
    raise ConfigError(f"Unknown API provider: {provider}")
