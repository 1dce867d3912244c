"""Parley - AI reply options for chat messages.

Selects the system prompt for a sender, asks an OpenAI-compatible endpoint for
reply options, and recovers a usable option list from whatever the model
returns, retrying when the output is malformed.
"""

from parley.errors import ParleyError
from parley.suggestions import SuggestionService

__version__ = "1.0.0"

__all__ = ["ParleyError", "SuggestionService", "__version__"]
