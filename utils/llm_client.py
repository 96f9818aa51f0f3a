"""
LLM Client with Groq primary and Bedrock Claude fallback
"""
import json
import time
from typing import Optional, Dict, Any
from enum import Enum

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from config import settings
from utils.logger import logger
from utils.retry_decorator import with_retry


class LLMProvider(str, Enum):
    """LLM Provider types"""
    GROQ = "groq"
    BEDROCK_CLAUDE = "bedrock_claude"


class LLMClient:
    """
    Unified LLM client with automatic fallback

    Primary: Groq (JSON mode, low latency)
    Fallback: AWS Bedrock Claude
    """

    def __init__(self):
        self.groq_client = None
        self.bedrock_client = None
        self._initialize_groq()
        self._initialize_bedrock()

    def _initialize_groq(self) -> None:
        """Initialize Groq API client"""
        if not settings.GROQ_API_KEY:
            logger.info("GROQ_API_KEY not configured, skipping Groq initialization")
            return

        try:
            from groq import Groq

            self.groq_client = Groq(
                api_key=settings.GROQ_API_KEY,
                timeout=settings.GROQ_TIMEOUT
            )
            logger.info(f"Groq API client initialized (model: {settings.GROQ_MODEL})")
        except Exception as e:
            logger.warning(f"Failed to initialize Groq client: {e}")
            self.groq_client = None

    def _initialize_bedrock(self) -> None:
        """Initialize AWS Bedrock client"""
        if not settings.AWS_ACCESS_KEY_ID or not settings.AWS_SECRET_ACCESS_KEY:
            logger.info("AWS credentials not configured, skipping Bedrock initialization")
            return

        try:
            boto_config = Config(
                region_name=settings.AWS_REGION,
                connect_timeout=settings.BEDROCK_TIMEOUT,
                read_timeout=settings.BEDROCK_TIMEOUT,
                retries={'max_attempts': settings.MAX_RETRIES}
            )

            self.bedrock_client = boto3.client(
                service_name='bedrock-runtime',
                region_name=settings.AWS_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                config=boto_config
            )
            logger.info("Bedrock Claude client initialized successfully")
        except Exception as e:
            logger.warning(f"Failed to initialize Bedrock client: {e}")
            self.bedrock_client = None

    @with_retry()
    def _invoke_groq(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = None,
        temperature: float = None,
        json_mode: bool = False
    ) -> Dict[str, Any]:
        """
        Invoke Groq API with retry logic

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            json_mode: Ask the provider to emit a single JSON object

        Returns:
            Response dict
        """
        if not self.groq_client:
            raise RuntimeError("Groq client not initialized")

        max_tokens = max_tokens or settings.MODEL_MAX_TOKENS
        temperature = temperature if temperature is not None else settings.MODEL_TEMPERATURE

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request = {
            "model": settings.GROQ_MODEL,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        start_time = time.time()
        try:
            response = self.groq_client.chat.completions.create(**request)
        except Exception as e:
            logger.error(f"Groq API error: {e}")
            raise

        tokens_in = 0
        tokens_out = 0
        if getattr(response, "usage", None):
            tokens_in = response.usage.prompt_tokens or 0
            tokens_out = response.usage.completion_tokens or 0

        return {
            "content": response.choices[0].message.content,
            "provider": LLMProvider.GROQ,
            "model": settings.GROQ_MODEL,
            "latency": time.time() - start_time,
            "tokens": {
                "input": tokens_in,
                "output": tokens_out
            }
        }

    @with_retry()
    def _invoke_bedrock_claude(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = None,
        temperature: float = None
    ) -> Dict[str, Any]:
        """
        Invoke Bedrock Claude with retry logic

        Raises:
            Exception if Bedrock invocation fails
        """
        if not self.bedrock_client:
            raise RuntimeError("Bedrock client not initialized")

        max_tokens = max_tokens or settings.MODEL_MAX_TOKENS
        temperature = temperature if temperature is not None else settings.MODEL_TEMPERATURE

        request_body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}]
        }
        if system_prompt:
            request_body["system"] = system_prompt

        start_time = time.time()

        try:
            response = self.bedrock_client.invoke_model(
                modelId=settings.BEDROCK_MODEL_ID,
                body=json.dumps(request_body)
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            logger.error(f"Bedrock API error: {error_code}", error=str(e))
            raise

        response_body = json.loads(response['body'].read())

        return {
            "content": response_body['content'][0]['text'],
            "provider": LLMProvider.BEDROCK_CLAUDE,
            "model": settings.BEDROCK_MODEL_ID,
            "latency": time.time() - start_time,
            "tokens": {
                "input": response_body.get('usage', {}).get('input_tokens', 0),
                "output": response_body.get('usage', {}).get('output_tokens', 0)
            }
        }

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = None,
        temperature: float = None,
        json_mode: bool = False
    ) -> Dict[str, Any]:
        """
        Generate completion with automatic fallback

        Fallback chain: Groq -> Bedrock Claude

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            json_mode: Request a JSON object where the provider supports it

        Returns:
            Response dict with content and metadata

        Raises:
            RuntimeError if all providers fail
        """
        errors = []

        if self.groq_client:
            try:
                return self._invoke_groq(prompt, system_prompt, max_tokens, temperature, json_mode)
            except Exception as groq_error:
                logger.warning(f"Groq failed: {groq_error}, falling back to Bedrock")
                errors.append(f"Groq: {groq_error}")

        if self.bedrock_client:
            try:
                return self._invoke_bedrock_claude(prompt, system_prompt, max_tokens, temperature)
            except Exception as bedrock_error:
                logger.warning(f"Bedrock Claude failed: {bedrock_error}")
                errors.append(f"Bedrock: {bedrock_error}")

        if not errors:
            raise RuntimeError("No LLM provider configured")
        raise RuntimeError(f"All configured LLM providers failed: {'; '.join(errors)}")

    def is_available(self, provider: Optional[LLMProvider] = None) -> bool:
        """
        Check if LLM provider is available

        Args:
            provider: Specific provider to check, or None for any
        """
        if provider == LLMProvider.GROQ:
            return self.groq_client is not None
        if provider == LLMProvider.BEDROCK_CLAUDE:
            return self.bedrock_client is not None
        return self.groq_client is not None or self.bedrock_client is not None


# Global LLM client instance
llm_client = LLMClient()
