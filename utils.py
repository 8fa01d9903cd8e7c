"""
Provides common, stateless utility functions used across the application.
"""
import os
from datetime import datetime

from config import API_KEY_FILE_PATH, DEFAULT_MODEL, DEFAULT_PROVIDER, PROVIDER_API_KEY_ENV
from data_models import ApiSettings, Provider


def get_timestamp() -> str:
    """
    Generates a formatted, uppercase timestamp string.

    Returns:
        A string representing the current time in the format 'DDMMMYYYY_HHMMSSAM/PM',
        e.g., '07AUG2025_014830PM'.
    """
    return datetime.now().strftime("%d%b%Y_%I%M%S%p").upper()


def load_api_key(provider: Provider) -> str:
    """
    Looks up a provider's API key in the environment. For Google, a key file in
    'private_data/' is accepted as well.
    """
    key = os.environ.get(PROVIDER_API_KEY_ENV.get(provider.value, ""), "")
    if key or provider != Provider.GOOGLE:
        return key
    try:
        with open(API_KEY_FILE_PATH, "r") as f:
            return f.read().strip()
    except FileNotFoundError:
        return ""


def default_settings() -> ApiSettings:
    provider = Provider(DEFAULT_PROVIDER)
    return ApiSettings(provider=provider, api_key=load_api_key(provider), model=DEFAULT_MODEL)
