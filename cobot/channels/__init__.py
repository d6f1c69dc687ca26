"""Input channels for the agent."""
