"""Memory: database models, repositories and the conversation store."""
