"""
Provider adapters: one per wire format, all exposing the same capability.

Each adapter opens its own transport, pulls the assistant's text deltas out of
provider-specific chunks and feeds them through one running frame buffer to
recover action records. Whatever goes wrong at the transport level ends the
sequence with exactly one ERROR record built by the error classifier.

    Google          -> GeminiSDKService          (google.generativeai, chunk.text)
    AvalAI          -> GeminiRestService         (candidates[0].content.parts[*].text)
    GapGPT, TalkBot -> OpenAICompatibleService   (choices[0].delta.content)

The REST adapters compose two layers of frame extraction: provider envelopes
are recovered from the raw HTTP body first, then action records from the text
those envelopes carry.
"""
import codecs
import json
import logging
from typing import Any, Iterable, Iterator, Optional, Protocol

import google.generativeai as genai
import requests

from action_parser import iter_action_records
from config import EXECUTION_MODEL, PROVIDER_BASE_URLS, REQUEST_TIMEOUT, SAFETY_SETTINGS
from data_models import (
    ActionRecord,
    ApiSettings,
    CodeExecutionResult,
    ConversationTurn,
    ExecutableCode,
    ExecutionPart,
    Provider,
)
from error_classifier import ProviderHTTPError, classify_error, create_error_action
from frame_extractor import iter_json_frames
from prompts import load_system_prompt


class CodeExecutionUnavailable(Exception):
    """Raised when the selected provider cannot run code."""


class GenerationService(Protocol):
    """The capability every provider adapter offers."""

    def stream_generation(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        """Streams action records for `prompt`, given the earlier turns. Finite and not restartable."""
        ...


# --- Shared stream plumbing ---


def _report_failures(provider: str, records: Iterator[ActionRecord]) -> Iterator[ActionRecord]:
    """Passes records through and turns any failure into a single ERROR record."""
    try:
        yield from records
    except Exception as e:
        logging.error(f"{provider}: generation stream failed: {e}")
        yield create_error_action(e)


def iter_decoded_text(byte_chunks: Iterable[bytes]) -> Iterator[str]:
    """
    Decodes a raw byte stream as UTF-8 without ever splitting a character,
    even when a multibyte sequence straddles two network chunks.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    for raw in byte_chunks:
        if text := decoder.decode(raw):
            yield text
    if tail := decoder.decode(b"", final=True):
        yield tail


def iter_envelopes(text_chunks: Iterable[str]) -> Iterator[dict]:
    """
    Recovers provider envelopes from a streamed HTTP body.

    Gemini streams a JSON array of objects and OpenAI-compatible servers
    stream `data: {...}` lines ending in `data: [DONE]`; in both cases the
    objects are found by brace balancing and the framing around them is ignored.

    Raises:
        ProviderHTTPError: If the stream carries an error envelope.
    """
    for frame in iter_json_frames(text_chunks):
        envelope = json.loads(frame)
        if envelope.get("error"):
            raise ProviderHTTPError(None, envelope)
        yield envelope


def _stream_http(url: str, payload: dict, headers: dict) -> Iterator[str]:
    """POSTs `payload` and yields the decoded response body as it arrives."""
    with requests.post(url, json=payload, headers=headers, stream=True, timeout=REQUEST_TIMEOUT) as response:
        if not response.ok:
            raise ProviderHTTPError.from_response(response)
        yield from iter_decoded_text(response.iter_content(chunk_size=None))


# --- Google (SDK) ---


def _to_sdk_contents(history: list[ConversationTurn], prompt: str) -> list[dict]:
    contents = [{"role": "model" if turn.role == "assistant" else "user", "parts": [turn.text]} for turn in history]
    contents.append({"role": "user", "parts": [prompt]})
    return contents


def _sdk_chunk_text(chunk) -> str:
    # `chunk.text` raises on chunks without text parts (finish or safety metadata only).
    if not chunk.candidates or not chunk.candidates[0].content.parts:
        return ""
    return chunk.text


class GeminiSDKService:
    """Streams through the official google.generativeai client."""

    provider_name = Provider.GOOGLE.value

    def __init__(self, api_key: str, model_name: str, system_prompt: str):
        self.api_key = api_key
        self.model_name = model_name
        self.system_prompt = system_prompt

    def stream_generation(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        return _report_failures(self.provider_name, self._stream(history, prompt))

    def _stream(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=self.system_prompt,
            safety_settings=SAFETY_SETTINGS,
        )
        response = model.generate_content(_to_sdk_contents(history, prompt), stream=True)
        text_deltas = (_sdk_chunk_text(chunk) for chunk in response)
        yield from iter_action_records(text_deltas)


# --- Gemini REST ---


def gemini_envelope_text(envelope: dict) -> str:
    """Reads the text of the first candidate of a Gemini REST envelope."""
    candidates = envelope.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class GeminiRestService:
    """Streams from a Gemini-compatible `streamGenerateContent` REST endpoint."""

    def __init__(self, api_key: str, model_name: str, system_prompt: str, base_url: str, provider_name: str = "Gemini REST"):
        self.api_key = api_key
        self.model_name = model_name
        self.system_prompt = system_prompt
        self.base_url = base_url.rstrip("/")
        self.provider_name = provider_name

    def build_request(self, history: list[ConversationTurn], prompt: str) -> tuple[str, dict, dict]:
        url = f"{self.base_url}/models/{self.model_name}:streamGenerateContent"
        contents = [
            {"role": "model" if turn.role == "assistant" else "user", "parts": [{"text": turn.text}]}
            for turn in history
        ]
        contents.append({"role": "user", "parts": [{"text": prompt}]})
        payload = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": self.system_prompt}]},
            "safetySettings": [{"category": k, "threshold": v} for k, v in SAFETY_SETTINGS.items()],
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}
        return url, payload, headers

    def stream_generation(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        return _report_failures(self.provider_name, self._stream(history, prompt))

    def _stream(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        url, payload, headers = self.build_request(history, prompt)
        envelopes = iter_envelopes(_stream_http(url, payload, headers))
        yield from iter_action_records(gemini_envelope_text(envelope) for envelope in envelopes)


# --- OpenAI-compatible REST ---


def openai_envelope_text(envelope: dict) -> str:
    """Reads `choices[0].delta.content` from a chat-completions stream chunk."""
    choices = envelope.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    return delta.get("content") or ""


class OpenAICompatibleService:
    """Streams from an OpenAI-compatible `/chat/completions` endpoint."""

    def __init__(self, api_key: str, model_name: str, system_prompt: str, base_url: str, provider_name: str = "OpenAI-compatible"):
        self.api_key = api_key
        self.model_name = model_name
        self.system_prompt = system_prompt
        self.base_url = base_url.rstrip("/")
        self.provider_name = provider_name

    def build_request(self, history: list[ConversationTurn], prompt: str) -> tuple[str, dict, dict]:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend({"role": turn.role, "content": turn.text} for turn in history)
        messages.append({"role": "user", "content": prompt})
        payload = {"model": self.model_name, "messages": messages, "stream": True}
        headers = {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}
        return f"{self.base_url}/chat/completions", payload, headers

    def stream_generation(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        return _report_failures(self.provider_name, self._stream(history, prompt))

    def _stream(self, history: list[ConversationTurn], prompt: str) -> Iterator[ActionRecord]:
        url, payload, headers = self.build_request(history, prompt)
        envelopes = iter_envelopes(_stream_http(url, payload, headers))
        yield from iter_action_records(openai_envelope_text(envelope) for envelope in envelopes)


# --- Provider Registry ---
# Each provider maps to exactly one adapter; REST adapters also get the
# provider's base endpoint from config.
PROVIDER_ADAPTERS: dict[Provider, type] = {
    Provider.GOOGLE: GeminiSDKService,
    Provider.AVALAI: GeminiRestService,
    Provider.GAPGPT: OpenAICompatibleService,
    Provider.TALKBOT: OpenAICompatibleService,
}


def get_api_service(settings: ApiSettings, system_prompt: Optional[str] = None) -> GenerationService:
    """Builds the adapter for the configured provider."""
    service_class = PROVIDER_ADAPTERS[settings.provider]
    kwargs: dict[str, Any] = {
        "api_key": settings.api_key,
        "model_name": settings.model,
        "system_prompt": system_prompt if system_prompt is not None else load_system_prompt(),
    }
    if settings.provider.value in PROVIDER_BASE_URLS:
        kwargs["base_url"] = PROVIDER_BASE_URLS[settings.provider.value]
        kwargs["provider_name"] = settings.provider.value
    return service_class(**kwargs)


# --- Code execution (Google only) ---


def _enum_name(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "name", None) or str(value)


def _to_execution_part(part) -> Optional[ExecutionPart]:
    if part.text:
        return ExecutionPart(text=part.text)
    code = part.executable_code
    if code and code.code:
        return ExecutionPart(executable_code=ExecutableCode(language=_enum_name(code.language), code=code.code))
    result = part.code_execution_result
    if result and (result.output or result.outcome):
        return ExecutionPart(
            code_execution_result=CodeExecutionResult(outcome=_enum_name(result.outcome), output=result.output or "")
        )
    return None


def start_execution_chat(settings: ApiSettings):
    """
    Opens a chat session with the code-execution tool enabled.

    Raises:
        CodeExecutionUnavailable: For non-Google providers or a missing key.
    """
    if settings.provider != Provider.GOOGLE:
        raise CodeExecutionUnavailable(
            "Code execution is only supported for the 'Google' provider. Please change it in settings."
        )
    if not settings.api_key:
        raise CodeExecutionUnavailable("Google API key for code execution is not set in settings.")
    genai.configure(api_key=settings.api_key)
    model = genai.GenerativeModel(model_name=EXECUTION_MODEL, tools="code_execution")
    return model.start_chat()


def stream_code_execution(chat, prompt: str) -> Iterator[ExecutionPart]:
    """
    Sends one message on an execution chat and yields its structured parts
    (text, generated code, execution results). A failure yields one error part.
    """
    try:
        response = chat.send_message(prompt, stream=True)
        for chunk in response:
            if not chunk.candidates:
                continue
            for part in chunk.candidates[0].content.parts:
                if execution_part := _to_execution_part(part):
                    yield execution_part
    except Exception as e:
        logging.error(f"Code execution failed: {e}")
        yield ExecutionPart(error=classify_error(e))
