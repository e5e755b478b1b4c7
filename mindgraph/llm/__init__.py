from .openai_wrapper import OpenAIEmbedder, OpenAIReasoner, build_client

__all__ = ["OpenAIEmbedder", "OpenAIReasoner", "build_client"]
