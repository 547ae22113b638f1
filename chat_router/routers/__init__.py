"""HTTP routers for the chat assistant and the operator dashboard."""
