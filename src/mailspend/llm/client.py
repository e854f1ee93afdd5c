"""Gemini client construction."""
from google import genai
from google.genai import types


def create_client(api_key: str, timeout_seconds: int = 60) -> genai.Client:
    """Gemini client whose every request carries a bounded timeout."""
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=timeout_seconds * 1000)  # milliseconds
    )
