"""
External Call Gateway

Resolves ``<sraix service="name">`` against a registry of service configs
and performs the HTTP call.

    SRAIXConfig    one outbound service (URL or URL template, method,
                   headers, timeout, response extraction, fallback)
    SRAIXRequest   per-call parameters taken from the tag attributes
    SRAIXGateway   registry + invoke()

Resolution when a call fails (unknown service, network error, timeout,
HTTP status >= 400, unparseable response):

    tag default  ->  config fallback_response  ->  unhandled

``invoke`` never raises; an unhandled result carries the error text and the
caller decides what to substitute.

URL templates accept ``{input}``, ``{lat}``/``{lon}`` (parsed from a
"lat,lon" hint), ``{hint}``, ``{botid}``, ``{host}``, ``{apikey}`` and any
wildcard name (``{star1}``), plus ``${ENV_VAR}`` environment references.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests
from requests.structures import CaseInsensitiveDict

from golem.errors import SRAIXError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_FORM = "application/x-www-form-urlencoded"
_JSON = "application/json"


def substitute_env(value: str) -> str:
    """Replace ``${NAME}`` with the environment value (empty when unset)."""

    def _lookup(match: re.Match) -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is None:
            logger.warning("Environment variable %s is not set", name)
            return ""
        return resolved

    return _ENV_REF.sub(_lookup, value or "")


# ──────────────────────────────────────────────────────────────────
# Data types
# ──────────────────────────────────────────────────────────────────

@dataclass
class SRAIXConfig:
    name: str
    base_url: str = ""
    url_template: str = ""
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT
    response_format: str = "text"
    response_path: str = ""
    fallback_response: str = ""
    include_wildcards: bool = False
    query_param: str = "input"

    def validate(self) -> None:
        if not self.name:
            raise ValueError("SRAIX config name cannot be empty")
        if not self.base_url and not self.url_template:
            raise ValueError(f"SRAIX service {self.name!r} needs base_url or url_template")
        self.method = (self.method or "POST").upper()
        self.response_format = (self.response_format or "text").lower()
        if self.response_format not in ("text", "json", "xml"):
            raise ValueError(f"SRAIX service {self.name!r}: unknown response_format {self.response_format!r}")
        if not self.timeout or self.timeout <= 0:
            self.timeout = DEFAULT_TIMEOUT

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SRAIXConfig":
        if not isinstance(data, dict):
            raise ValueError(f"SRAIX config must be an object, got {type(data).__name__}")
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "name" not in known:
            raise ValueError("SRAIX config is missing 'name'")
        config = cls(**known)
        config.headers = {str(k): str(v) for k, v in (config.headers or {}).items()}
        try:
            config.timeout = float(config.timeout)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"SRAIX service {config.name!r}: invalid timeout {config.timeout!r}") from exc
        config.validate()
        return config

    @classmethod
    def from_properties(cls, name: str, props: Dict[str, str]) -> "SRAIXConfig":
        """Build from ``baseurl``/``urltemplate``/``header.X``-style properties."""
        config = cls(name=name)
        for prop, value in props.items():
            key = prop.lower()
            if key == "baseurl":
                config.base_url = value
            elif key == "urltemplate":
                config.url_template = value
            elif key == "queryparam":
                config.query_param = value
            elif key == "apikey":
                config.headers["Authorization"] = value
            elif key == "method":
                config.method = value
            elif key == "timeout":
                try:
                    config.timeout = float(value)
                except ValueError:
                    logger.warning("Invalid timeout %r for SRAIX service %s", value, name)
            elif key == "responseformat":
                config.response_format = value
            elif key == "responsepath":
                config.response_path = value
            elif key == "fallback":
                config.fallback_response = value
            elif key == "includewildcards":
                config.include_wildcards = value.strip().lower() in {"1", "true", "yes", "on"}
            elif key.startswith("header."):
                config.headers[prop[len("header."):]] = value
            else:
                logger.warning("Unknown SRAIX property %r for service %s", key, name)
        config.validate()
        return config


@dataclass
class SRAIXRequest:
    default: Optional[str] = None
    hint: str = ""
    botid: str = ""
    host: str = ""
    wildcards: Dict[str, str] = field(default_factory=dict)


@dataclass
class SRAIXResult:
    text: str = ""
    handled: bool = False
    error: Optional[str] = None


# ──────────────────────────────────────────────────────────────────
# Response extraction
# ──────────────────────────────────────────────────────────────────

def extract_json_path(data: Any, path: str) -> str:
    """Follow a dot path with numeric list indices (``results.0.name``)."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return ""
            current = current[part]
        elif isinstance(current, list):
            try:
                index = int(part)
            except ValueError:
                return ""
            if not 0 <= index < len(current):
                return ""
            current = current[index]
        else:
            return ""
    if current is None:
        return ""
    if isinstance(current, (dict, list)):
        return json.dumps(current)
    if isinstance(current, bool):
        return "true" if current else "false"
    return str(current)


def extract_xml_path(body: str, path: str) -> str:
    root = ET.fromstring(body)
    if not path:
        return "".join(root.itertext())
    parts = [p for p in path.replace(".", "/").split("/") if p]
    if parts and parts[0] == root.tag:
        parts = parts[1:]
    node = root.find("/".join(parts)) if parts else root
    return "".join(node.itertext()) if node is not None else ""


# ──────────────────────────────────────────────────────────────────
# Gateway
# ──────────────────────────────────────────────────────────────────

class SRAIXGateway:
    """Registry of outbound services and the call path for ``<sraix>``."""

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT, max_workers: int = 8):
        self.default_timeout = default_timeout
        self._configs: Dict[str, SRAIXConfig] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sraix")
        self._http = requests

    # registry ------------------------------------------------------

    def add_config(self, config: SRAIXConfig) -> None:
        config.validate()
        with self._lock:
            self._configs[config.name] = config
        logger.info("Registered SRAIX service %s -> %s", config.name, config.url_template or config.base_url)

    def remove_config(self, name: str) -> bool:
        with self._lock:
            return self._configs.pop(name, None) is not None

    def get_config(self, name: str) -> Optional[SRAIXConfig]:
        with self._lock:
            return self._configs.get(name)

    def list_configs(self) -> Dict[str, SRAIXConfig]:
        with self._lock:
            return dict(self._configs)

    def configure_from_properties(self, properties: Dict[str, str]) -> List[str]:
        """Register every ``sraix.<name>.<prop>`` / ``service.<name>.<prop>`` group."""
        grouped: Dict[str, Dict[str, str]] = {}
        for key, value in properties.items():
            prefix, _, rest = key.partition(".")
            if prefix.lower() not in ("sraix", "service") or not rest:
                continue
            name, _, prop = rest.partition(".")
            if not name or not prop:
                logger.warning("Invalid SRAIX property %r (expected sraix.<service>.<property>)", key)
                continue
            grouped.setdefault(name, {})[prop] = value

        added = []
        for name, props in grouped.items():
            try:
                self.add_config(SRAIXConfig.from_properties(name, props))
            except ValueError as exc:
                logger.warning("Skipping SRAIX service %s: %s", name, exc)
                continue
            added.append(name)
        return added

    def load_file(self, path: Union[str, Path]) -> List[str]:
        from golem.config import load_sraix_config_file

        configs = load_sraix_config_file(path)
        for config in configs:
            self.add_config(config)
        return [c.name for c in configs]

    def load_directory(self, path: Union[str, Path]) -> List[str]:
        from golem.config import load_sraix_config_directory

        configs = load_sraix_config_directory(path)
        for config in configs:
            self.add_config(config)
        return [c.name for c in configs]

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # invocation ----------------------------------------------------

    def invoke(self, name: str, text: str, request: Optional[SRAIXRequest] = None) -> SRAIXResult:
        request = request or SRAIXRequest()
        config = self.get_config(name) if name else None
        if config is None:
            error = f"SRAIX service {name!r} not configured"
            logger.warning("%s", error)
            return self._fallback(None, request, error)

        timeout = config.timeout or self.default_timeout
        future = self._executor.submit(self._call, config, text, request, timeout)
        try:
            return SRAIXResult(text=future.result(timeout=timeout), handled=True)
        except FutureTimeout:
            future.cancel()
            error = f"SRAIX service {name!r} timed out after {timeout:g}s"
        except (requests.RequestException, SRAIXError, ValueError, ET.ParseError) as exc:
            error = f"SRAIX service {name!r} failed: {exc}"
        logger.warning("%s", error)
        return self._fallback(config, request, error)

    @staticmethod
    def _fallback(config: Optional[SRAIXConfig], request: SRAIXRequest, error: str) -> SRAIXResult:
        if request.default:
            return SRAIXResult(text=request.default, handled=True, error=error)
        if config is not None and config.fallback_response:
            return SRAIXResult(text=config.fallback_response, handled=True, error=error)
        return SRAIXResult(handled=False, error=error)

    def _placeholders(self, config: SRAIXConfig, text: str, request: SRAIXRequest) -> Dict[str, str]:
        values = dict(request.wildcards)
        # form style input ("list_id=1&content=milk") also feeds the URL template
        if "=" in text and "&" in text:
            for pair in text.split("&"):
                key, sep, value = pair.partition("=")
                if sep and key.strip() not in values:
                    values[key.strip()] = value.strip()
        for key in ("hint", "botid", "host"):
            if getattr(request, key):
                values[key] = getattr(request, key)
        if request.hint.count(",") == 1:
            lat, lon = request.hint.split(",")
            values["lat"], values["lon"] = lat.strip(), lon.strip()
        headers = CaseInsensitiveDict(config.headers)
        if "Authorization" in headers:
            values.setdefault("apikey", headers["Authorization"])
        values["input"] = text.replace(" ", "+")
        return values

    @staticmethod
    def _fill(template: str, values: Dict[str, str]) -> str:
        result = substitute_env(template)
        for key, value in values.items():
            result = result.replace("{" + key + "}", value).replace("{" + key.upper() + "}", value)
        return result

    def _body(self, config: SRAIXConfig, text: str, request: SRAIXRequest):
        content_type = CaseInsensitiveDict(config.headers).get("Content-Type", _JSON)
        content_type = content_type.split(";")[0].strip().lower()
        if content_type == _FORM:
            return text, _FORM
        stripped = text.strip()
        if content_type == _JSON and stripped[:1] in ("{", "[") and stripped[-1:] in ("}", "]"):
            try:
                json.loads(stripped)
                return stripped, _JSON
            except json.JSONDecodeError:
                pass
        payload: Dict[str, Any] = {"input": text}
        if config.include_wildcards and request.wildcards:
            payload["wildcards"] = dict(request.wildcards)
        for key in ("botid", "host", "hint"):
            if getattr(request, key):
                payload[key] = getattr(request, key)
        return json.dumps(payload), _JSON

    def _call(self, config: SRAIXConfig, text: str, request: SRAIXRequest, timeout: float) -> str:
        values = self._placeholders(config, text, request)
        url = self._fill(config.url_template, values) if config.url_template else substitute_env(config.base_url)
        headers = CaseInsensitiveDict({k: self._fill(v, values) for k, v in config.headers.items()})

        params = None
        body = None
        if config.method == "GET":
            if not config.url_template:
                params = {config.query_param or "input": text}
        else:
            body, content_type = self._body(config, text, request)
            headers.setdefault("Content-Type", content_type)

        logger.debug("SRAIX %s %s %s", config.name, config.method, url)
        response = self._http.request(
            config.method,
            url,
            params=params,
            data=body.encode("utf-8") if body is not None else None,
            headers=headers,
            timeout=timeout,
        )
        if response.status_code >= 400:
            raise SRAIXError(f"HTTP {response.status_code}: {response.text[:200]}")

        raw = response.text
        if config.response_format == "json" and config.response_path:
            return extract_json_path(json.loads(raw), config.response_path).strip()
        if config.response_format == "xml":
            return extract_xml_path(raw, config.response_path).strip()
        return raw.strip()
