"""API routers for Agent Studio RAG."""
