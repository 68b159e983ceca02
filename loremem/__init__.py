"""Long-term memory layer for roleplay chat sessions."""
