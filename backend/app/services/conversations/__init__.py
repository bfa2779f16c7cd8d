"""Conversation and message persistence behind the ConversationStore interface."""
