"""
Security Protocol Suggestions

Asks an OpenAI-compatible chat completion endpoint for a session plan:

    {
        "sessionName": "...",
        "operations": ["...", ...],
        "recommendedLevel": "none|low|medium|high|quantum",
        "requiredAuthentication": ["PUF" | "GMAK" | "BiMoType" | "QuoreMind", ...]
    }

Features:
    - Async support via openai.AsyncOpenAI (optional `ai` extra)
    - Optional attachment sent as a base64 data URL
    - Strict response validation; anything off-shape is a
      ProtocolGenerationFailure
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from trustmesh.core.config import ProtocolConfig
from trustmesh.core.errors import ProtocolGenerationFailure
from trustmesh.session.models import AuthenticationType, OperationDraft, SecurityLevel, SessionDraft

logger = logging.getLogger(__name__)

PLACEHOLDER_SESSION_NAME = "Please provide security requirements"

SYSTEM_INSTRUCTION = """You are CERBERUS QAISOS, an AI expert in quantum security systems.
Generate quantum security protocols with operations that follow the PGP (Quadrant Gravitational Polarity) theory.
Keep session names concise, ideally within 10 words. Operations should follow quantum security logic.
Security levels: quantum > high > medium > low > none.
Authentication types: QuoreMind (hardware verification), PUF (boot security), GMAK (session auth), BiMoType (quantum interpretation).
Respond with a JSON object with keys sessionName (string), operations (array of strings),
recommendedLevel (string) and requiredAuthentication (array of strings)."""


@dataclass(frozen=True, slots=True)
class ProtocolFile:
    """Attachment forwarded to the endpoint."""

    data: bytes
    mime_type: str

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class GeneratedSecurityProtocol:
    session_name: str
    operations: Tuple[str, ...] = ()
    recommended_level: SecurityLevel = SecurityLevel.NONE
    required_authentication: Tuple[AuthenticationType, ...] = field(default_factory=tuple)

    @classmethod
    def placeholder(cls) -> GeneratedSecurityProtocol:
        return cls(session_name=PLACEHOLDER_SESSION_NAME)

    @classmethod
    def from_response(cls, raw: str) -> GeneratedSecurityProtocol:
        """
        Parse and validate the endpoint's JSON.

        Raises:
            ProtocolGenerationFailure: invalid JSON or shape mismatch
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ProtocolGenerationFailure.malformed_response(f"invalid JSON ({e})", raw or "")

        if not isinstance(data, dict):
            raise ProtocolGenerationFailure.malformed_response("expected a JSON object", raw)

        name = data.get("sessionName")
        operations = data.get("operations", [])
        level = data.get("recommendedLevel", SecurityLevel.NONE.value)
        auth = data.get("requiredAuthentication", [])

        if not isinstance(name, str) or not name:
            raise ProtocolGenerationFailure.malformed_response("sessionName must be a string", raw)
        if not isinstance(operations, list) or not all(isinstance(o, str) for o in operations):
            raise ProtocolGenerationFailure.malformed_response("operations must be strings", raw)
        if not isinstance(auth, list):
            raise ProtocolGenerationFailure.malformed_response(
                "requiredAuthentication must be a list", raw,
            )

        try:
            recommended = SecurityLevel(level)
            required = tuple(AuthenticationType(a) for a in auth)
        except ValueError as e:
            raise ProtocolGenerationFailure.malformed_response(str(e), raw)

        return cls(
            session_name=name,
            operations=tuple(operations),
            recommended_level=recommended,
            required_authentication=required,
        )

    def to_drafts(self) -> Tuple[SessionDraft, List[OperationDraft]]:
        """Drafts ready for create_session_with_operations."""
        auth_type = self.required_authentication[0] if self.required_authentication else None
        session = SessionDraft(
            session_name=self.session_name,
            security_level=self.recommended_level,
            authentication_type=auth_type,
        )
        return session, [OperationDraft(session_name=op) for op in self.operations]


class ProtocolGenerator:
    """
    Protocol suggestion adapter.

    Example:
        generator = ProtocolGenerator(ProtocolConfig(api_key="sk-..."))
        protocol = await generator.generate("secure a firmware update rollout")
    """

    def __init__(self, config: Optional[ProtocolConfig] = None, client: Any = None) -> None:
        """
        Args:
            config: Model and endpoint settings
            client: Preconfigured async chat client (defaults to
                openai.AsyncOpenAI built from config on first use)
        """
        self._config = config or ProtocolConfig()
        self._client = client

    @property
    def model(self) -> str:
        return self._config.model

    def _get_client(self) -> Any:
        if self._client is None:
            # Import at first use to keep the dependency optional
            try:
                import openai
            except ImportError:
                raise ProtocolGenerationFailure.client_unavailable(
                    "OpenAI SDK not installed. Run: pip install trustmesh[ai]"
                )
            self._client = openai.AsyncOpenAI(
                api_key=self._config.api_key,
                base_url=self._config.base_url,
                max_retries=self._config.max_retries,
            )
        return self._client

    @staticmethod
    def build_messages(prompt: str, file: Optional[ProtocolFile] = None) -> List[dict]:
        text = (
            f"Generate quantum security protocol for: {prompt}.\n"
            "Consider architecture with PUF, GMAK, BiMoType v2.0, and QuoreMind systems."
        )
        content: Any = text
        if file is not None:
            content = [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": file.data_url()}},
            ]
        return [
            {"role": "system", "content": SYSTEM_INSTRUCTION},
            {"role": "user", "content": content},
        ]

    async def generate(
        self,
        prompt: str,
        file: Optional[ProtocolFile] = None,
    ) -> GeneratedSecurityProtocol:
        """
        Raises:
            ProtocolGenerationFailure: endpoint error or malformed response
        """
        if not prompt and file is None:
            return GeneratedSecurityProtocol.placeholder()

        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._config.model,
                messages=self.build_messages(prompt, file),
                response_format={"type": "json_object"},
            )
            raw = response.choices[0].message.content
        except Exception as e:
            logger.warning("Protocol endpoint call failed: %s", e)
            raise ProtocolGenerationFailure.endpoint_failed(self._config.model, cause=e)

        return GeneratedSecurityProtocol.from_response(raw)
