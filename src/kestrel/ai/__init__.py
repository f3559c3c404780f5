"""Model client, tools and orchestration for the chat gateway."""
