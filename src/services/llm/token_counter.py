"""Token estimation for rate limiting.

Groq doesn't expose a tokenizer, so token counts are estimated from the
script mix of the text. Actual usage comes from the API response.
"""

# (first code point, last code point, characters per token)
_SCRIPT_RATIOS: tuple[tuple[int, int, float], ...] = (
    (0x0900, 0x097F, 2.0),  # Devanagari
    (0x0980, 0x09FF, 2.0),  # Bengali
    (0x0B80, 0x0BFF, 2.0),  # Tamil
    (0x3040, 0x30FF, 1.0),  # Japanese kana
    (0x4E00, 0x9FFF, 1.0),  # CJK ideographs
    (0xAC00, 0xD7AF, 1.0),  # Hangul
)
_LATIN_CHARS_PER_TOKEN = 4.0


def estimate_tokens(text: str) -> int:
    """Estimate token count for Llama models.

    Latin script is ~4 characters per token, Indic scripts ~2, and
    CJK/Hangul roughly one token per character. A 10% buffer is added.
    """
    if not text:
        return 0

    estimated = 0.0
    for char in text:
        code = ord(char)
        for first, last, ratio in _SCRIPT_RATIOS:
            if first <= code <= last:
                estimated += 1 / ratio
                break
        else:
            estimated += 1 / _LATIN_CHARS_PER_TOKEN

    return int(estimated * 1.1) + 1
