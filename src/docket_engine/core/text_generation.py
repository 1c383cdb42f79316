"""
Text Generation Client
Claude via AWS Bedrock, plus helpers for reading JSON out of free-form replies
"""

import json
import logging
from typing import Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import TextGenerationError

logger = logging.getLogger(__name__)


class BedrockTextGenerator:
    """
    Thin wrapper around the Bedrock runtime for single-turn completions
    """

    def __init__(self,
                 model_id: str = "us.anthropic.claude-sonnet-4-20250514-v1:0",
                 region: str = "us-east-1",
                 bedrock_client=None,
                 timeout: float = 30.0):
        """Initialize with optional Bedrock client and model ID."""

        self.model_id = model_id
        self.region = region

        if bedrock_client:
            self.bedrock_client = bedrock_client
        else:
            try:
                self.bedrock_client = boto3.client(
                    'bedrock-runtime',
                    region_name=region,
                    config=Config(
                        connect_timeout=timeout,
                        read_timeout=timeout,
                        retries={"max_attempts": 1},
                    ),
                )
            except Exception as e:
                logger.warning(f"Could not initialize Bedrock client: {e}")
                self.bedrock_client = None

        self.model_params = {
            "anthropic_version": "bedrock-2023-05-31",
            "temperature": 0.1,  # Low temperature for consistent classification
        }

    def generate(self, system: str, prompt: str, max_tokens: int = 1024) -> str:
        """
        Run one completion

        Args:
            system: System instruction
            prompt: User prompt
            max_tokens: Response token budget

        Returns:
            Text of the first content block

        Raises:
            TextGenerationError: client missing, API failure or empty reply
        """

        if not self.bedrock_client:
            raise TextGenerationError("Bedrock client not initialized")

        body = json.dumps({
            "anthropic_version": self.model_params["anthropic_version"],
            "max_tokens": max_tokens,
            "temperature": self.model_params["temperature"],
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        })

        try:
            response = self.bedrock_client.invoke_model(
                modelId=self.model_id,
                body=body,
                accept='application/json',
                contentType='application/json'
            )
            response_body = json.loads(response['body'].read())
        except (ClientError, BotoCoreError) as e:
            logger.error(f"AWS Bedrock error: {e}")
            raise TextGenerationError(str(e)) from e

        content = response_body.get('content') or []
        if not content or not content[0].get('text'):
            raise TextGenerationError("Empty response from model")

        return content[0]['text']


def extract_first_json_object(text: str) -> Optional[Dict]:
    """
    Parse the first balanced JSON object embedded in free-form text.

    Braces inside JSON strings are ignored while scanning. Candidates that
    are balanced but not valid JSON are skipped.

    Returns:
        The parsed object, or None when the text holds no JSON object
    """

    if not text:
        return None

    start = text.find('{')
    while start >= 0:
        depth = 0
        in_string = False
        escaped = False

        for idx in range(start, len(text)):
            char = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif char == '\\':
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(text[start:idx + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(parsed, dict):
                        return parsed
                    break

        start = text.find('{', start + 1)

    return None
