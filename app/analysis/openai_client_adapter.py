import httpx
import openai

from app.analysis.client_base import BaseAnalysisClient
from app.analysis.exceptions import AnalysisError, AnalysisNetworkError
from app.logging.logger import Log


class OpenAIClientAdapter(BaseAnalysisClient):
    """Analysis client for any provider speaking the OpenAI chat completions API.

    Responses are constrained with a strict JSON schema per stage. Transport
    and provider-side failures surface as AnalysisNetworkError; anything wrong
    with the returned message surfaces as AnalysisError.
    """

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

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
        try:
            response = await self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "strict": True,
                        "schema": json_schema,
                    },
                },
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise AnalysisNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIStatusError as exc:
            raise AnalysisNetworkError(
                f"AI provider API error (HTTP {exc.status_code}) for '{schema_name}': {exc}"
            ) from exc
        except openai.APIError as exc:
            raise AnalysisNetworkError(f"AI provider API error: {exc}") from exc

        usage = getattr(response, "usage", None)
        if usage is not None:
            Log.debug(
                f"{schema_name} completion used {usage.total_tokens} tokens",
                model=model,
            )

        if not response.choices:
            raise AnalysisError("AI returned no choices")
        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise AnalysisError(
                f"AI response for '{schema_name}' was truncated at the token limit"
            )
        content = choice.message.content
        if content is None:
            refusal = getattr(choice.message, "refusal", None)
            if refusal:
                raise AnalysisError(f"AI refused the '{schema_name}' request: {refusal}")
            raise AnalysisError("AI returned empty response")
        return content
