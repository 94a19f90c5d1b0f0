"""Tests for the per-tool output parsers."""

from __future__ import annotations

import json

import pytest

from reposcan.scanner import parsers
from reposcan.scanner.parsers import ParseError


@pytest.mark.parametrize(
    "parse",
    [
        parsers.parse_trivy,
        parsers.parse_semgrep,
        parsers.parse_trufflehog,
        parsers.parse_gitleaks,
        parsers.parse_govulncheck,
        parsers.parse_bandit,
        parsers.parse_pip_audit,
        parsers.parse_safety,
        parsers.parse_npm_audit,
        parsers.parse_cargo_audit,
        parsers.parse_bundler_audit,
        parsers.parse_brakeman,
    ],
)
def test_empty_output_yields_nothing(parse):
    assert parse("") == []
    assert parse("  \n") == []


@pytest.mark.parametrize(
    "parse",
    [
        parsers.parse_trivy,
        parsers.parse_semgrep,
        parsers.parse_gitleaks,
        parsers.parse_npm_audit,
        parsers.parse_cargo_audit,
        parsers.parse_brakeman,
    ],
)
def test_malformed_json_raises(parse):
    with pytest.raises(ParseError):
        parse('{"results": [')


class TestTrivy:
    OUTPUT = json.dumps(
        {
            "Results": [
                {
                    "Target": "requirements.txt",
                    "Vulnerabilities": [
                        {
                            "VulnerabilityID": "CVE-2018-18074",
                            "PkgName": "requests",
                            "InstalledVersion": "2.19.0",
                            "FixedVersion": "2.20.0",
                            "Severity": "HIGH",
                            "Title": "Insufficiently protected credentials",
                        }
                    ],
                },
                {
                    "Target": "config/keys.env",
                    "Secrets": [
                        {
                            "RuleID": "aws-access-key-id",
                            "Title": "AWS Access Key ID",
                            "Severity": "CRITICAL",
                            "StartLine": 3,
                        }
                    ],
                },
                {
                    "Target": "Dockerfile",
                    "Misconfigurations": [
                        {
                            "ID": "DS002",
                            "Title": "Image user should not be 'root'",
                            "Severity": "HIGH",
                            "Resolution": "Add 'USER' instruction",
                            "CauseMetadata": {"StartLine": 1},
                        }
                    ],
                },
            ]
        }
    )

    def test_all_result_kinds(self):
        findings = parsers.parse_trivy(self.OUTPUT)
        assert len(findings) == 3
        vuln, secret, misconfig = findings

        assert vuln.file_path == "requirements.txt"
        assert vuln.rule_id == "CVE-2018-18074"
        assert vuln.severity == "HIGH"
        assert vuln.remediation == "Upgrade requests from 2.19.0 to 2.20.0."

        assert secret.line_number == 3
        assert secret.severity == "CRITICAL"

        assert misconfig.remediation == "Add 'USER' instruction"
        assert misconfig.line_number == 1

    def test_no_results(self):
        assert parsers.parse_trivy('{"SchemaVersion": 2}') == []

    def test_non_object_raises(self):
        with pytest.raises(ParseError):
            parsers.parse_trivy("[1, 2]")


def test_semgrep_fix_becomes_remediation():
    output = json.dumps(
        {
            "results": [
                {
                    "check_id": "python.lang.security.audit.subprocess-shell-true",
                    "path": "app/main.py",
                    "start": {"line": 4},
                    "extra": {
                        "message": "Found subprocess call with shell=True",
                        "severity": "ERROR",
                        "fix": "subprocess.call(cmd, shell=False)",
                    },
                },
                {
                    "check_id": "generic.secrets",
                    "path": "a.txt",
                    "start": {"line": 1},
                    "extra": {"message": "secret", "severity": "WARNING"},
                },
            ]
        }
    )
    first, second = parsers.parse_semgrep(output)
    assert first.line_number == 4
    assert first.remediation == "Suggested fix: subprocess.call(cmd, shell=False)"
    assert second.remediation == ""


def test_trufflehog_json_lines():
    lines = [
        '{"level":"info","msg":"running source"}',
        json.dumps(
            {
                "DetectorName": "AWS",
                "Verified": True,
                "SourceMetadata": {"Data": {"Filesystem": {"file": "/tmp/r/keys.py", "line": 7}}},
            }
        ),
        json.dumps(
            {
                "DetectorName": "Github",
                "Verified": False,
                "SourceMetadata": {"Data": {"Filesystem": {"file": "/tmp/r/.git/config", "line": 1}}},
            }
        ),
        "not json at all",
        json.dumps(
            {
                "DetectorName": "Slack",
                "Verified": False,
                "SourceMetadata": {"Data": {"Filesystem": {"file": "/tmp/r/bot.js", "line": 2}}},
            }
        ),
    ]
    findings = parsers.parse_trufflehog("\n".join(lines))
    assert [f.rule_id for f in findings] == ["AWS", "Slack"]
    assert findings[0].severity == "critical"
    assert "(verified)" in findings[0].description
    assert findings[1].severity == "high"


class TestGitleaks:
    def test_report(self):
        output = json.dumps(
            [
                {
                    "RuleID": "generic-api-key",
                    "Description": "Generic API Key",
                    "File": "settings.py",
                    "StartLine": 12,
                }
            ]
        )
        (f,) = parsers.parse_gitleaks(output)
        assert f.file_path == "settings.py"
        assert f.line_number == 12
        assert f.severity == "high"

    def test_object_rejected(self):
        with pytest.raises(ParseError):
            parsers.parse_gitleaks('{"findings": []}')


def test_govulncheck_deduplicates():
    finding = {
        "finding": {
            "osv": "GO-2023-1234",
            "fixed_version": "v0.17.0",
            "trace": [
                {
                    "module": "golang.org/x/net",
                    "position": {"filename": "server.go", "line": 40},
                }
            ],
        }
    }
    output = "\n".join(
        [
            '{"config": {"scanner_name": "govulncheck"}}',
            json.dumps(finding),
            json.dumps(finding),
            '{"osv": {"id": "GO-2023-1234"}}',
        ]
    )
    (f,) = parsers.parse_govulncheck(output)
    assert f.rule_id == "GO-2023-1234"
    assert f.file_path == "server.go"
    assert f.remediation == "Upgrade golang.org/x/net to v0.17.0."


class TestBandit:
    OUTPUT = json.dumps(
        {
            "results": [
                {
                    "filename": "app/main.py",
                    "line_number": 4,
                    "issue_text": "subprocess call with shell=True identified",
                    "issue_severity": "HIGH",
                    "test_id": "B602",
                }
            ]
        }
    )

    def test_tolerates_leading_log_lines(self):
        output = "[main]  INFO  profile include tests: None\n" + self.OUTPUT
        (f,) = parsers.parse_bandit(output)
        assert f.rule_id == "B602"
        assert f.severity == "HIGH"

    def test_noise_only_raises(self):
        with pytest.raises(ParseError):
            parsers.parse_bandit("[main] ERROR something broke")


class TestPipAudit:
    def test_dict_form(self):
        output = json.dumps(
            {
                "dependencies": [
                    {
                        "name": "requests",
                        "version": "2.19.0",
                        "vulns": [
                            {
                                "id": "PYSEC-2018-28",
                                "fix_versions": ["2.20.0"],
                                "description": "Credentials leak on redirect",
                            }
                        ],
                    },
                    {"name": "idna", "version": "3.4", "vulns": []},
                ]
            }
        )
        (f,) = parsers.parse_pip_audit(output)
        assert f.rule_id == "PYSEC-2018-28"
        assert f.file_path == "requirements.txt"
        assert "2.20.0" in f.remediation

    def test_list_form(self):
        output = json.dumps(
            [{"name": "flask", "version": "0.12", "vulns": [{"id": "X-1", "fix_versions": []}]}]
        )
        (f,) = parsers.parse_pip_audit(output)
        assert f.rule_id == "X-1"
        assert f.remediation == ""


class TestSafety:
    def test_legacy_list(self):
        output = json.dumps([["django", "<2.2", "2.0", "SQL injection", "38000"]])
        (f,) = parsers.parse_safety(output)
        assert f.rule_id == "38000"
        assert f.description == "django: SQL injection"

    def test_v2_dict(self):
        output = json.dumps(
            {
                "vulnerabilities": [
                    {
                        "package_name": "jinja2",
                        "analyzed_version": "2.10",
                        "advisory": "Sandbox escape",
                        "vulnerability_id": 39525,
                        "fixed_versions": ["2.10.1"],
                    }
                ]
            }
        )
        (f,) = parsers.parse_safety(output)
        assert f.rule_id == "39525"
        assert f.remediation == "Upgrade jinja2 from 2.10 to 2.10.1."

    @pytest.mark.parametrize(
        "severity,expected",
        [
            ({"source": "nvd", "cvssv3": {"base_score": 9.8, "base_severity": "CRITICAL"}}, "CRITICAL"),
            ({"source": "nvd", "cvssv2": {"base_score": 5.0, "base_severity": "MEDIUM"}}, "MEDIUM"),
            ({"source": "safety"}, "high"),
            (None, "high"),
            ("low", "low"),
        ],
    )
    def test_severity_forms(self, severity, expected):
        output = json.dumps(
            {
                "vulnerabilities": [
                    {
                        "package_name": "requests",
                        "advisory": "Proxy-Authorization header leak",
                        "vulnerability_id": "58755",
                        "severity": severity,
                    }
                ]
            }
        )
        (f,) = parsers.parse_safety(output)
        assert f.severity == expected


def test_npm_audit_fix_available():
    output = json.dumps(
        {
            "vulnerabilities": {
                "lodash": {
                    "severity": "critical",
                    "via": [{"title": "Prototype Pollution"}],
                    "fixAvailable": {"name": "lodash", "version": "4.17.21"},
                },
                "minimist": {
                    "severity": "moderate",
                    "via": ["mkdirp"],
                    "fixAvailable": True,
                },
            }
        }
    )
    lodash, minimist = parsers.parse_npm_audit(output)
    assert lodash.description == "lodash: Prototype Pollution"
    assert lodash.remediation == "Upgrade lodash to 4.17.21."
    assert minimist.description == "minimist: Vulnerability in minimist"
    assert "npm audit fix" in minimist.remediation


def test_cargo_audit_patched_versions():
    output = json.dumps(
        {
            "vulnerabilities": {
                "list": [
                    {
                        "advisory": {"id": "RUSTSEC-2020-0071", "title": "Potential segfault"},
                        "package": {"name": "time", "version": "0.1.43"},
                        "versions": {"patched": [">=0.2.23"]},
                    }
                ]
            }
        }
    )
    (f,) = parsers.parse_cargo_audit(output)
    assert f.rule_id == "RUSTSEC-2020-0071"
    assert f.file_path == "Cargo.toml"
    assert f.remediation == "Upgrade time from 0.1.43 to >=0.2.23."


def test_bundler_audit():
    output = json.dumps(
        {
            "results": [
                {
                    "gem": {"name": "rack", "version": "2.0.1"},
                    "advisory": {
                        "id": "CVE-2019-16782",
                        "title": "Session hijack",
                        "criticality": "medium",
                        "patched_versions": ["~> 1.6.12", ">= 2.0.8"],
                    },
                }
            ]
        }
    )
    (f,) = parsers.parse_bundler_audit(output)
    assert f.severity == "medium"
    assert f.remediation == "Upgrade rack from 2.0.1 to ~> 1.6.12 or >= 2.0.8."


def test_brakeman_confidence_maps_to_severity():
    output = json.dumps(
        {
            "warnings": [
                {"warning_type": "SQL Injection", "message": "Possible SQLi", "file": "app/models/user.rb", "line": 10, "confidence": "High"},
                {"warning_type": "XSS", "message": "Unescaped", "file": "app/views/a.erb", "line": 2, "confidence": "Weak"},
                {"warning_type": "Redirect", "message": "Open redirect", "file": "app/c.rb", "line": 5, "confidence": "Medium"},
            ]
        }
    )
    severities = [f.severity for f in parsers.parse_brakeman(output)]
    assert severities == ["high", "low", "medium"]
