"""
Custom domain ownership check over DNS-over-HTTPS.

A domain counts as connected when one of its CNAME answers is a verify
target (or a subdomain of one). A records are only collected so the owner
can see what the domain currently points at.
"""
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from urllib import error, parse, request

from salescrm.core.errors import Upstream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DnsRecord:
    type: str
    name: str
    data: str


@dataclass(frozen=True)
class DomainCheck:
    valid: bool
    records: tuple[DnsRecord, ...] = ()


class DomainVerifier(Protocol):
    def check(self, domain: str) -> DomainCheck: ...


class DohDomainVerifier:
    def __init__(self, *, endpoint: str, targets: Iterable[str], timeout: float):
        self.endpoint = endpoint
        self.targets = tuple(t.strip().lower().rstrip(".") for t in targets if t.strip())
        self.timeout = timeout

    def _query(self, domain: str, record_type: str) -> list[DnsRecord]:
        url = f"{self.endpoint}?{parse.urlencode({'name': domain, 'type': record_type})}"
        req = request.Request(url, headers={"Accept": "application/dns-json"}, method="GET")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (error.URLError, TimeoutError, ValueError) as exc:
            logger.warning("DNS %s lookup failed for domain=%s: %s", record_type, domain, exc)
            raise Upstream("DNS lookup failed", reason="dns_unavailable") from exc

        records = []
        for answer in payload.get("Answer") or []:
            records.append(
                DnsRecord(
                    type=record_type,
                    name=str(answer.get("name", "")).rstrip("."),
                    data=str(answer.get("data", "")).rstrip(".").lower(),
                )
            )
        return records

    def _is_target(self, value: str) -> bool:
        return any(value == t or value.endswith(f".{t}") for t in self.targets)

    def check(self, domain: str) -> DomainCheck:
        records = self._query(domain, "CNAME")
        valid = any(self._is_target(r.data) for r in records)
        if not records:
            try:
                records = self._query(domain, "A")
            except Upstream:
                # Display only; the CNAME answer already decided validity.
                records = []
        logger.debug("DNS check domain=%s valid=%s records=%s", domain, valid, len(records))
        return DomainCheck(valid=valid, records=tuple(records))
