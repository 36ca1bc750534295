"""Call session lifecycle."""

from call_assistant.session.controller import CallSessionController
