"""Period keys and generation prompts."""

from typing import List, Optional

DECADES: List[str] = ["1950s", "1960s", "1970s", "1980s", "1990s", "2000s"]

DEFAULT_PROMPT_TEMPLATE = (
    "Reimagine the person in this photo in the style of the {period}. "
    "This includes clothing, hairstyle, photo quality, and the overall aesthetic of that decade. "
    "The output must be a photorealistic image showing the person clearly."
)


def prompt_for(key: str, template: Optional[str] = None) -> str:
    """Build the generation prompt for a period key."""
    return (template or DEFAULT_PROMPT_TEMPLATE).format(period=key)
