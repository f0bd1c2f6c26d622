import requests
from loguru import logger

import config
from errors import AIGatewayError


def chat_completion(system_prompt, user_prompt, temperature=config.TEMPERATURE, max_tokens=config.MAX_TOKENS):
    """Send one non-streaming chat-completion request and return the reply text."""
    api_key = config.get_gateway_api_key()
    if not api_key:
        raise AIGatewayError("AI gateway API key not configured")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    payload = {
        "model": config.get_model_name(),
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt}
        ],
        "temperature": temperature,
        "max_tokens": max_tokens
    }

    logger.info("Calling AI Gateway...")
    try:
        response = requests.post(config.get_gateway_url(), headers=headers, json=payload)
    except requests.RequestException as e:
        logger.error(f"AI Gateway request failed: {e}")
        raise AIGatewayError(f"AI Gateway request failed: {e}")

    if not response.ok:
        logger.error(f"AI Gateway error: {response.status_code} {response.text}")
        raise AIGatewayError(f"AI Gateway error: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        logger.error(f"AI Gateway returned a non-JSON body: {e}")
        raise AIGatewayError("AI Gateway returned an invalid response")

    choices = data.get("choices") or [{}]
    message = choices[0].get("message") or {}
    return message.get("content") or ""
