"""
Homebot chatbot pipeline.

`chatbot.generator.ResponseGenerator` answers one visitor message on the
server side; `chatbot.orchestrator.ChatOrchestrator` drives a conversation
from the client side.
"""
