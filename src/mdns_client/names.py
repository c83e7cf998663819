"""Domain-name helpers and discovery target parsing.

Names are handled in presentation form: labels joined by ``.``, with a dot
or backslash inside a label escaped by a backslash (``My\\.Printer``).
"""
from __future__ import annotations

from dataclasses import dataclass

MAX_LABEL_LENGTH = 63
MAX_NAME_LENGTH = 255
SERVICE_PROTOCOLS: frozenset[str] = frozenset({"_tcp", "_udp"})


def normalize_name(name: str) -> str:
    """Strip surrounding whitespace and a single trailing dot."""
    name = name.strip()
    if name.endswith(".") and name != "." and not name.endswith("\\."):
        name = name[:-1]
    return name


def name_key(name: str) -> str:
    """Return the case-insensitive comparison key for a domain name."""
    return normalize_name(name).lower()


def escape_label(label: str) -> str:
    return label.replace("\\", "\\\\").replace(".", "\\.")


def join_labels(labels: list[str]) -> str:
    """Build a presentation-form name from raw labels."""
    return ".".join(escape_label(label) for label in labels)


def split_labels(name: str) -> list[str]:
    """Split a presentation-form name into raw labels.

    Only unescaped dots separate labels; ``\\.`` and ``\\\\`` decode to a
    literal dot and backslash.
    """
    labels: list[str] = []
    current: list[str] = []
    chars = iter(normalize_name(name))
    for char in chars:
        if char == "\\":
            current.append(next(chars, "\\"))
        elif char == ".":
            labels.append("".join(current))
            current = []
        else:
            current.append(char)
    labels.append("".join(current))
    return labels


def validate_name(name: str) -> None:
    """Check that ``name`` is syntactically a domain name.

    Args:
        name: Candidate name, with or without trailing dot.

    Raises:
        ValueError: If the name is empty, has an empty label, a label longer
            than 63 bytes, or encodes to more than 255 bytes.
    """
    normalized = normalize_name(name)
    if not normalized or normalized == ".":
        raise ValueError("domain name must not be empty")

    total = 1
    for label in split_labels(normalized):
        size = len(label.encode("utf-8"))
        if size == 0:
            raise ValueError(f"empty label in {name!r}")
        if size > MAX_LABEL_LENGTH:
            raise ValueError(f"label {label!r} exceeds {MAX_LABEL_LENGTH} bytes")
        total += size + 1
    if total > MAX_NAME_LENGTH:
        raise ValueError(f"name {name!r} exceeds {MAX_NAME_LENGTH} bytes")


@dataclass(frozen=True, slots=True)
class DiscoveryTarget:
    """Service name the engine discovers.

    Attributes:
        name (str): Normalized target name; an instance label containing dots
            is escaped, e.g. ``My\\.Printer._ipp._tcp.local``.
        service_type (str): DNS-SD service type PTR queries are sent for,
            e.g. ``_http._tcp.local``.
        instance (str | None): Raw instance label when the target names a
            single instance, ``None`` for a service-type target.
    """

    name: str
    service_type: str
    instance: str | None = None

    @property
    def is_instance(self) -> bool:
        return self.instance is not None

    @classmethod
    def parse(cls, name: str) -> "DiscoveryTarget":
        """Validate and classify a target name.

        ``Printer._http._tcp.local`` is an instance target whose service type
        is ``_http._tcp.local``; ``_http._tcp.local`` (or any name without an
        instance prefix) is a service-type target.

        Everything before the service type is one instance label, so
        ``My.Printer._ipp._tcp.local`` queries the single label ``My.Printer``.

        Raises:
            ValueError: If the name is not a valid domain name.
        """
        validate_name(name)
        normalized = normalize_name(name)
        labels = split_labels(normalized)

        for i in range(1, len(labels) - 1):
            if labels[i].startswith("_") and labels[i + 1].lower() in SERVICE_PROTOCOLS:
                if labels[i - 1].lower() == "_sub":
                    # _printer._sub._http._tcp.local is a subtype, not an instance.
                    break
                instance = ".".join(labels[:i])
                service_type = join_labels(labels[i:])
                full = f"{escape_label(instance)}.{service_type}"
                validate_name(full)
                return cls(name=full, service_type=service_type, instance=instance)
        return cls(name=normalized, service_type=normalized)
