"""Convert Qualys records into graph entities and relationships."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

from graph_qualys.graph.entities import Entity, Relationship, create_direct_relationship
from graph_qualys.provider.xml_utils import to_list

ACCOUNT_TYPE = "qualys_account"
HOST_TYPE = "qualys_host"
WEB_APP_TYPE = "qualys_web_app"
HOST_FINDING_TYPE = "qualys_host_finding"
WEB_APP_FINDING_TYPE = "qualys_web_app_finding"
VULN_TYPE = "qualys_vuln"

SEVERITY_NAMES: dict[int, str] = {
    1: "informational",
    2: "low",
    3: "medium",
    4: "high",
    5: "critical",
}

# Detection statuses that mean the finding is still present on the host
_OPEN_STATUSES = frozenset({"new", "active", "re-opened"})


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def parse_time(value: Any) -> int | None:
    """Convert an ISO-8601 timestamp into epoch milliseconds."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_severity(value: Any) -> tuple[str | None, int | None]:
    """Map a Qualys 1-5 severity to ``(name, number)``."""
    numeric = _to_int(value)
    return SEVERITY_NAMES.get(numeric) if numeric is not None else None, numeric


def qualys_web_url(api_url: str) -> str:
    """QualysGuard UI base for an API base (``qualysapi.`` -> ``qualysguard.``)."""
    parts = urlsplit(api_url)
    host = parts.hostname or ""
    if host.startswith("qualysapi."):
        host = "qualysguard." + host[len("qualysapi."):]
    return f"{parts.scheme or 'https'}://{host}"


def _compact(properties: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in properties.items() if v is not None}


def host_entity_key(host_id: Any) -> str:
    return f"qualys-host:{host_id}"


def web_app_entity_key(web_app_id: Any) -> str:
    return f"qualys-web-app:{web_app_id}"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def create_account_entity(
    api_url: str,
    username: str,
    portal_info: dict[str, Any] | None = None,
) -> Entity:
    host = urlsplit(api_url).hostname or api_url
    portal_version = ((portal_info or {}).get("Portal-Version") or {})
    return Entity(
        key=f"qualys-account:{username}@{host}",
        type=ACCOUNT_TYPE,
        class_="Account",
        display_name=f"Qualys ({host})",
        properties=_compact({
            "name": host,
            "username": username,
            "apiUrl": api_url,
            "webLink": qualys_web_url(api_url),
            "portalVersion": portal_version.get("PortalApplication-VERSION"),
        }),
    )


def _ec2_source(host_asset: dict[str, Any]) -> dict[str, Any]:
    sources = (host_asset.get("sourceInfo") or {}).get("list") or {}
    for source in to_list(sources.get("Ec2AssetSourceSimple")):
        if isinstance(source, dict):
            return source
    return {}


def convert_host_asset_to_entity(host_asset: dict[str, Any]) -> Entity:
    """Convert an Asset Management ``HostAsset`` into a ``qualys_host``."""
    host_id = host_asset["qwebHostId"]
    ec2 = _ec2_source(host_asset)
    os_name = host_asset.get("os")
    display_name = (
        host_asset.get("name")
        or host_asset.get("dnsHostName")
        or host_asset.get("address")
        or str(host_id)
    )
    return Entity(
        key=host_entity_key(host_id),
        type=HOST_TYPE,
        class_="Host",
        display_name=str(display_name),
        properties=_compact({
            "hostId": host_id,
            "assetId": host_asset.get("id"),
            "name": host_asset.get("name"),
            "hostname": host_asset.get("dnsHostName"),
            "fqdn": host_asset.get("fqdn"),
            "netbiosName": host_asset.get("netbiosName"),
            "os": os_name,
            "platform": _platform(os_name),
            "ipAddress": host_asset.get("address"),
            "trackingMethod": host_asset.get("trackingMethod"),
            "instanceId": ec2.get("instanceId"),
            "region": ec2.get("region"),
            "accountId": _str_or_none(ec2.get("accountId")),
            "createdOn": parse_time(host_asset.get("created")),
            "updatedOn": parse_time(host_asset.get("modified")),
            "lastScannedOn": parse_time(host_asset.get("lastVulnScan")),
        }),
    )


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def _platform(os_name: Any) -> str | None:
    if not os_name:
        return None
    lowered = str(os_name).lower()
    for platform in ("windows", "linux", "darwin", "unix"):
        if platform in lowered:
            return platform
    if "mac" in lowered:
        return "darwin"
    return "other"


def convert_web_app_to_entity(web_app: dict[str, Any]) -> Entity:
    """Convert a WAS ``WebApp`` into a ``qualys_web_app``."""
    web_app_id = web_app["id"]
    last_scan = web_app.get("lastScan") or {}
    return Entity(
        key=web_app_entity_key(web_app_id),
        type=WEB_APP_TYPE,
        class_="Application",
        display_name=str(web_app.get("name") or web_app_id),
        properties=_compact({
            "id": str(web_app_id),
            "name": web_app.get("name"),
            "url": web_app.get("url"),
            "isScanned": bool(last_scan) or None,
            "lastScanId": last_scan.get("id"),
            "createdOn": parse_time(web_app.get("createdDate")),
            "updatedOn": parse_time(web_app.get("updatedDate")),
        }),
    )


def host_targets(host: dict[str, Any]) -> list[str]:
    """Addresses a detection host is known by, used to match hosts from other sources."""
    candidates = [
        host.get("IP"),
        host.get("DNS"),
        host.get("EC2_INSTANCE_ID"),
        host.get("NETBIOS"),
    ]
    return [str(c) for c in candidates if c]


def create_host_finding_entity(
    host: dict[str, Any],
    detection: dict[str, Any],
    targets: list[str] | None = None,
) -> Entity:
    """Convert one VM detection on *host* into a ``qualys_host_finding``."""
    qid = detection.get("QID")
    severity, numeric_severity = normalize_severity(detection.get("SEVERITY"))
    status = detection.get("STATUS")
    key = ":".join(
        str(part) if part is not None else ""
        for part in (
            host.get("ID"), qid, detection.get("PORT"),
            detection.get("PROTOCOL"), detection.get("SSL"),
        )
    )
    return Entity(
        key=f"qualys-host-finding:{key}",
        type=HOST_FINDING_TYPE,
        class_="Finding",
        display_name=f"QID {qid}",
        properties=_compact({
            "qid": qid,
            "hostId": host.get("ID"),
            "type": detection.get("TYPE"),
            "severity": severity,
            "numericSeverity": numeric_severity,
            "status": status,
            "open": str(status).lower() in _OPEN_STATUSES if status else None,
            "port": detection.get("PORT"),
            "protocol": detection.get("PROTOCOL"),
            "ssl": bool(detection["SSL"]) if detection.get("SSL") is not None else None,
            "timesFound": detection.get("TIMES_FOUND"),
            "isDisabled": _flag(detection.get("IS_DISABLED")),
            "isIgnored": _flag(detection.get("IS_IGNORED")),
            "firstFoundOn": parse_time(detection.get("FIRST_FOUND_DATETIME")),
            "lastFoundOn": parse_time(detection.get("LAST_FOUND_DATETIME")),
            "lastProcessedOn": parse_time(detection.get("LAST_PROCESSED_DATETIME")),
            "ipAddress": host.get("IP"),
            "fqdn": host.get("DNS"),
            "ec2InstanceId": host.get("EC2_INSTANCE_ID"),
            "targets": targets if targets is not None else host_targets(host),
        }),
    )


def _flag(value: Any) -> bool | None:
    return None if value is None else bool(_to_int(value))


def create_web_app_finding_entity(finding: dict[str, Any]) -> Entity:
    """Convert a WAS ``Finding`` into a ``qualys_web_app_finding``."""
    finding_id = finding.get("uniqueId") or finding["id"]
    severity, numeric_severity = normalize_severity(finding.get("severity"))
    web_app = finding.get("webApp") or {}
    status = finding.get("status")
    return Entity(
        key=f"qualys-web-app-finding:{finding_id}",
        type=WEB_APP_FINDING_TYPE,
        class_="Finding",
        display_name=str(finding.get("name") or f"QID {finding.get('qid')}"),
        properties=_compact({
            "id": str(finding.get("id")),
            "qid": finding.get("qid"),
            "name": finding.get("name"),
            "type": finding.get("type"),
            "findingType": finding.get("findingType"),
            "severity": severity,
            "numericSeverity": numeric_severity,
            "status": status,
            "open": str(status).lower() in _OPEN_STATUSES if status else None,
            "url": finding.get("url"),
            "webAppId": web_app.get("id"),
            "timesDetected": finding.get("timesDetected"),
            "firstFoundOn": parse_time(finding.get("firstDetectedDate")),
            "lastFoundOn": parse_time(finding.get("lastDetectedDate")),
            "lastTestedOn": parse_time(finding.get("lastTestedDate")),
        }),
    )


def create_vulnerability_entity(vuln: dict[str, Any], api_url: str) -> Entity:
    """Convert a knowledge base ``VULN`` into a ``qualys_vuln``."""
    qid = vuln["QID"]
    severity, numeric_severity = normalize_severity(vuln.get("SEVERITY_LEVEL"))
    cves = [
        cve for cve in to_list((vuln.get("CVE_LIST") or {}).get("CVE"))
        if isinstance(cve, dict)
    ]
    cvss = vuln.get("CVSS") or {}
    cvss_v3 = vuln.get("CVSS_V3") or {}
    return Entity(
        key=f"vuln-qid:{qid}",
        type=VULN_TYPE,
        class_="Vulnerability",
        display_name=str(vuln.get("TITLE") or f"QID {qid}"),
        properties=_compact({
            "qid": qid,
            "name": vuln.get("TITLE"),
            "category": vuln.get("CATEGORY"),
            "vulnType": vuln.get("VULN_TYPE"),
            "severityLevel": numeric_severity,
            "severity": severity,
            "solution": vuln.get("SOLUTION"),
            "cvssScore": _to_float(cvss.get("BASE")),
            "cvssScoreV3": _to_float(cvss_v3.get("BASE")),
            "cveIds": [str(c["ID"]) for c in cves if c.get("ID")] or None,
            "references": [str(c["URL"]) for c in cves if c.get("URL")] or None,
            "publishedOn": parse_time(vuln.get("PUBLISHED_DATETIME")),
            "updatedOn": parse_time(vuln.get("LAST_SERVICE_MODIFICATION_DATETIME")),
            "webLink": f"{qualys_web_url(api_url)}/fo/common/vuln_info.php?id={qid}",
        }),
    )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


def create_has_relationship(parent: Entity, child: Entity) -> Relationship:
    return create_direct_relationship(parent, "HAS", child)


def create_finding_is_vuln_relationship(finding: Entity, vuln: Entity) -> Relationship:
    return create_direct_relationship(finding, "IS", vuln)
