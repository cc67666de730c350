"""
Conversation title derivation from the first user message.
"""

import re

_SENTENCE_END = re.compile(r"[.!?]")


def derive_conversation_title(
    message: str,
    short_length: int = 30,
    max_length: int = 50,
    word_limit: int = 45
) -> str:
    """
    Derive a conversation title from its first message

    Short messages are used as is. Longer ones are cut to their first
    sentence when that fits, otherwise to whole words within the word limit.
    A single word longer than the limit is cut at the limit.

    Args:
        message: First user message
        short_length: Messages up to this length become the title unchanged
        max_length: Longest acceptable first sentence
        word_limit: Bound for word-boundary truncation

    Returns:
        A title of at most max_length characters
    """
    clean = " ".join(message.split())
    if len(clean) <= short_length:
        return clean

    first_sentence = _SENTENCE_END.split(clean, maxsplit=1)[0].strip()
    if first_sentence and len(first_sentence) <= max_length:
        return first_sentence

    title = ""
    for word in clean.split(" "):
        candidate = f"{title} {word}" if title else word
        if len(candidate) > word_limit:
            break
        title = candidate

    return (title or clean[:word_limit])[:max_length]
