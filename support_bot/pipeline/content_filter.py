"""
Content policy checks for inbound chat messages.
Deterministic rules only: denylisted words, character floods, shouting.
"""

import logging
import re

logger = logging.getLogger(__name__)


# Prohibited words and phrases, matched as case-insensitive substrings
prohibited_words = [
    # Advertising and spam
    "spam", "advertisement", "free money", "lottery", "jackpot",
    "спам", "реклама", "бесплатно", "выигрыш", "лотерея",
    # Insults
    "idiot", "stupid", "moron",
    "идиот", "тупой", "дурак",
]

# Any single character repeated 6 or more times in a row
repeated_chars_pattern = re.compile(r"(.)\1{5,}", re.DOTALL)

# Shouting: share of uppercase letters among non-whitespace characters
uppercase_ratio_threshold = 0.7
uppercase_min_length = 10


def is_prohibited(text: str | None) -> bool:
    """
    Classify message text against the content policy.

    Args:
        text: Raw message text, may be empty

    Returns:
        True if any rule fires
    """
    if not text:
        return False

    lower_text = text.casefold()

    for word in prohibited_words:
        if word.casefold() in lower_text:
            logger.warning("Inappropriate content detected: %r", text)
            return True

    if repeated_chars_pattern.search(lower_text):
        logger.warning("Repeated characters detected (possible spam): %r", text)
        return True

    non_whitespace = re.sub(r"\s", "", text)
    if len(non_whitespace) > uppercase_min_length:
        uppercase_count = sum(1 for char in non_whitespace if char.isupper())
        if uppercase_count / len(non_whitespace) > uppercase_ratio_threshold:
            logger.warning("Too many uppercase letters detected: %r", text)
            return True

    return False
