from abc import ABC, abstractmethod


class BaseAnalysisClient(ABC):
    """Contract for provider-specific AI clients used by the analysis stages."""

    @abstractmethod
    async def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        schema_name: str,
        json_schema: dict[str, object],
    ) -> str:
        """Return provider response as plain text."""
