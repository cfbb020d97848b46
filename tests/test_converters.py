"""Tests for record -> entity/relationship converters."""

from __future__ import annotations

import pytest

from graph_qualys.graph.converters import (
    create_account_entity,
    convert_host_asset_to_entity,
    convert_web_app_to_entity,
    create_finding_is_vuln_relationship,
    create_has_relationship,
    create_host_finding_entity,
    create_vulnerability_entity,
    create_web_app_finding_entity,
    host_targets,
    normalize_severity,
    parse_time,
    qualys_web_url,
)
from graph_qualys.provider.xml_utils import parse_xml, to_list

_DETECTIONS_XML = """<?xml version="1.0" encoding="UTF-8" ?>
<HOST_LIST_VM_DETECTION_OUTPUT>
  <RESPONSE>
    <DATETIME>2020-06-01T12:00:00Z</DATETIME>
    <HOST_LIST>
      <HOST>
        <ID>107266189</ID>
        <IP>10.97.5.247</IP>
        <TRACKING_METHOD>EC2</TRACKING_METHOD>
        <OS><![CDATA[Amazon Linux 2]]></OS>
        <DNS><![CDATA[i-0c4f4b2b1fd4b4d6b]]></DNS>
        <EC2_INSTANCE_ID><![CDATA[i-0c4f4b2b1fd4b4d6b]]></EC2_INSTANCE_ID>
        <LAST_SCAN_DATETIME>2020-05-30T09:13:51Z</LAST_SCAN_DATETIME>
        <DETECTION_LIST>
          <DETECTION>
            <QID>38170</QID>
            <TYPE>Confirmed</TYPE>
            <SEVERITY>2</SEVERITY>
            <PORT>443</PORT>
            <PROTOCOL>tcp</PROTOCOL>
            <SSL>1</SSL>
            <RESULTS><![CDATA[Certificate expired]]></RESULTS>
            <STATUS>Active</STATUS>
            <FIRST_FOUND_DATETIME>2020-04-01T00:00:00Z</FIRST_FOUND_DATETIME>
            <LAST_FOUND_DATETIME>2020-05-30T09:13:51Z</LAST_FOUND_DATETIME>
            <TIMES_FOUND>12</TIMES_FOUND>
            <IS_IGNORED>0</IS_IGNORED>
            <IS_DISABLED>0</IS_DISABLED>
          </DETECTION>
          <DETECTION>
            <QID>105943</QID>
            <TYPE>Info</TYPE>
            <SEVERITY>1</SEVERITY>
            <STATUS>Fixed</STATUS>
          </DETECTION>
        </DETECTION_LIST>
      </HOST>
    </HOST_LIST>
  </RESPONSE>
</HOST_LIST_VM_DETECTION_OUTPUT>"""


@pytest.fixture
def detection_host():
    parsed = parse_xml(_DETECTIONS_XML)
    hosts = to_list(
        parsed["HOST_LIST_VM_DETECTION_OUTPUT"]["RESPONSE"]["HOST_LIST"]["HOST"]
    )
    return hosts[0]


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def test_parse_time():
    assert parse_time("2020-04-01T00:00:00Z") == 1585699200000
    assert parse_time(None) is None
    assert parse_time("not a date") is None


@pytest.mark.parametrize(
    "value,expected",
    [(1, ("informational", 1)), ("4", ("high", 4)), (5, ("critical", 5)),
     (None, (None, None)), (9, (None, 9))],
)
def test_normalize_severity(value, expected):
    assert normalize_severity(value) == expected


def test_qualys_web_url():
    assert qualys_web_url("https://qualysapi.qg3.apps.qualys.com") == (
        "https://qualysguard.qg3.apps.qualys.com"
    )
    assert qualys_web_url("https://example.com/") == "https://example.com"


# ---------------------------------------------------------------------------
# Host findings
# ---------------------------------------------------------------------------


def test_host_targets(detection_host):
    assert host_targets(detection_host) == [
        "10.97.5.247", "i-0c4f4b2b1fd4b4d6b", "i-0c4f4b2b1fd4b4d6b",
    ]


def test_host_finding_properties_transferred(detection_host):
    detections = to_list(detection_host["DETECTION_LIST"]["DETECTION"])
    finding = create_host_finding_entity(detection_host, detections[0], ["abc", "123"])

    obj = finding.to_graph_object()
    assert obj["_class"] == "Finding"
    assert obj["_type"] == "qualys_host_finding"
    assert obj["_key"] == "qualys-host-finding:107266189:38170:443:tcp:1"
    assert obj["displayName"] == "QID 38170"
    assert obj["qid"] == 38170
    assert obj["severity"] == "low"
    assert obj["numericSeverity"] == 2
    assert obj["status"] == "Active"
    assert obj["open"] is True
    assert obj["port"] == 443
    assert obj["ssl"] is True
    assert obj["isIgnored"] is False
    assert obj["timesFound"] == 12
    assert obj["firstFoundOn"] == 1585699200000
    assert obj["ipAddress"] == "10.97.5.247"
    assert obj["ec2InstanceId"] == "i-0c4f4b2b1fd4b4d6b"
    assert obj["targets"] == ["abc", "123"]


def test_host_finding_without_port(detection_host):
    detections = to_list(detection_host["DETECTION_LIST"]["DETECTION"])
    finding = create_host_finding_entity(detection_host, detections[1])
    assert finding.key == "qualys-host-finding:107266189:105943:::"
    assert finding.properties["open"] is False
    assert finding.properties["severity"] == "informational"
    assert "port" not in finding.properties
    assert finding.properties["targets"] == host_targets(detection_host)


# ---------------------------------------------------------------------------
# Hosts and web apps
# ---------------------------------------------------------------------------


def test_convert_host_asset_to_entity():
    host_asset = {
        "id": 9001,
        "name": "web-1",
        "dnsHostName": "web-1.internal",
        "fqdn": "web-1.internal.example.com",
        "os": "Microsoft Windows Server 2019",
        "address": "10.0.0.5",
        "qwebHostId": 101,
        "trackingMethod": "EC2",
        "created": "2020-01-01T00:00:00Z",
        "sourceInfo": {
            "list": {
                "AssetSource": {"type": "AGENT"},
                "Ec2AssetSourceSimple": {
                    "instanceId": "i-abc",
                    "region": "us-east-1",
                    "accountId": 205767712438,
                },
            }
        },
    }
    entity = convert_host_asset_to_entity(host_asset)
    assert entity.key == "qualys-host:101"
    assert entity.class_ == "Host"
    assert entity.display_name == "web-1"
    assert entity.properties["platform"] == "windows"
    assert entity.properties["instanceId"] == "i-abc"
    assert entity.properties["accountId"] == "205767712438"
    assert entity.properties["createdOn"] == 1577836800000
    assert "updatedOn" not in entity.properties


def test_convert_host_asset_display_name_fallback():
    entity = convert_host_asset_to_entity({"qwebHostId": 7, "address": "10.1.1.1"})
    assert entity.display_name == "10.1.1.1"
    assert "platform" not in entity.properties


def test_convert_web_app_to_entity():
    entity = convert_web_app_to_entity({
        "id": 42,
        "name": "Shop",
        "url": "https://shop.example.com",
        "lastScan": {"id": 777},
        "createdDate": "2020-01-01T00:00:00Z",
    })
    obj = entity.to_graph_object()
    assert obj["_key"] == "qualys-web-app:42"
    assert obj["_class"] == "Application"
    assert obj["isScanned"] is True
    assert obj["lastScanId"] == 777


def test_web_app_finding_entity():
    entity = create_web_app_finding_entity({
        "id": 5,
        "uniqueId": "8c4b-11ea",
        "qid": 150001,
        "name": "Reflected XSS",
        "type": "VULNERABILITY",
        "severity": 5,
        "status": "NEW",
        "webApp": {"id": 42},
        "lastDetectedDate": "2020-05-30T09:13:51Z",
    })
    assert entity.key == "qualys-web-app-finding:8c4b-11ea"
    assert entity.display_name == "Reflected XSS"
    assert entity.properties["severity"] == "critical"
    assert entity.properties["open"] is True
    assert entity.properties["webAppId"] == 42


def test_vulnerability_entity():
    vuln = parse_xml(
        "<VULN><QID>38170</QID><VULN_TYPE>Vulnerability</VULN_TYPE>"
        "<SEVERITY_LEVEL>2</SEVERITY_LEVEL><TITLE>SSL Certificate - Expired</TITLE>"
        "<CATEGORY>General remote services</CATEGORY>"
        "<SOLUTION>Renew the certificate</SOLUTION>"
        "<CVE_LIST><CVE><ID>CVE-2020-0001</ID><URL>https://nvd.example/1</URL></CVE></CVE_LIST>"
        "<CVSS><BASE>5.0</BASE></CVSS><CVSS_V3><BASE>5.3</BASE></CVSS_V3></VULN>"
    )["VULN"]
    entity = create_vulnerability_entity(vuln, "https://qualysapi.qualys.com")
    obj = entity.to_graph_object()
    assert obj["_key"] == "vuln-qid:38170"
    assert obj["_class"] == "Vulnerability"
    assert obj["displayName"] == "SSL Certificate - Expired"
    assert obj["severityLevel"] == 2
    assert obj["cvssScore"] == 5.0
    assert obj["cvssScoreV3"] == 5.3
    assert obj["cveIds"] == ["CVE-2020-0001"]
    assert obj["references"] == ["https://nvd.example/1"]
    assert obj["webLink"] == (
        "https://qualysguard.qualys.com/fo/common/vuln_info.php?id=38170"
    )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


def test_relationship_keys_and_types(detection_host):
    account = create_account_entity("https://qualysapi.qualys.com", "user")
    host = convert_host_asset_to_entity({"qwebHostId": 107266189})
    detections = to_list(detection_host["DETECTION_LIST"]["DETECTION"])
    finding = create_host_finding_entity(detection_host, detections[0])
    vuln = create_vulnerability_entity({"QID": 38170}, "https://qualysapi.qualys.com")

    has_host = create_has_relationship(account, host)
    assert has_host.type == "qualys_account_has_host"
    assert has_host.key == f"{account.key}|has|{host.key}"

    has_finding = create_has_relationship(host, finding)
    assert has_finding.type == "qualys_host_has_host_finding"
    assert has_finding.from_key == host.key
    assert has_finding.to_key == finding.key

    is_vuln = create_finding_is_vuln_relationship(finding, vuln)
    assert is_vuln.class_ == "IS"
    assert is_vuln.type == "qualys_host_finding_is_vuln"
    assert is_vuln.to_graph_object()["_fromEntityKey"] == finding.key


def test_account_entity():
    account = create_account_entity(
        "https://qualysapi.qg2.apps.qualys.com",
        "user",
        {"Portal-Version": {"PortalApplication-VERSION": "3.4.0"}},
    )
    assert account.key == "qualys-account:user@qualysapi.qg2.apps.qualys.com"
    assert account.properties["portalVersion"] == "3.4.0"
    assert account.properties["webLink"] == "https://qualysguard.qg2.apps.qualys.com"
