"""Parsers turning each tool's raw output into RawFinding lists.

Every parser takes the tool's output text and returns a list of findings.
Empty output yields no findings; output that should be JSON but is not raises
ParseError so the runner can record it against that tool alone.
"""

from __future__ import annotations

import json
import logging

from reposcan.scanner.models import RawFinding

logger = logging.getLogger(__name__)


class ParseError(ValueError):
    """A tool's output could not be understood."""


def _load_json(output: str, tool: str):
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseError(f"{tool}: invalid JSON output ({e.msg} at line {e.lineno})") from e


def _load_object(output: str, tool: str) -> dict:
    data = _load_json(output, tool)
    if not isinstance(data, dict):
        raise ParseError(f"{tool}: expected a JSON object")
    return data


def _json_lines(output: str):
    """Yield decoded objects from JSON-lines output, skipping log noise."""
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable line: %.80s", line)


def _upgrade_hint(package: str, version: str, fixes) -> str:
    if isinstance(fixes, str):
        fixes = [f.strip() for f in fixes.split(",") if f.strip()]
    fixes = [str(f) for f in fixes or []]
    if not fixes:
        return ""
    current = f" from {version}" if version else ""
    return f"Upgrade {package}{current} to {' or '.join(fixes)}."


def parse_trivy(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "trivy")
    findings: list[RawFinding] = []

    for result in data.get("Results") or []:
        target = result.get("Target", "")
        for v in result.get("Vulnerabilities") or []:
            title = v.get("Title") or v.get("VulnerabilityID", "")
            pkg = v.get("PkgName", "")
            findings.append(
                RawFinding(
                    file_path=target,
                    description=f"{pkg}: {title}" if pkg else title,
                    severity=v.get("Severity", ""),
                    rule_id=v.get("VulnerabilityID", ""),
                    remediation=_upgrade_hint(
                        pkg, v.get("InstalledVersion", ""), v.get("FixedVersion", "")
                    ),
                )
            )
        for s in result.get("Secrets") or []:
            findings.append(
                RawFinding(
                    file_path=target,
                    line_number=s.get("StartLine", 0) or 0,
                    description=s.get("Title") or f"Secret detected: {s.get('RuleID', '')}",
                    severity=s.get("Severity", ""),
                    rule_id=s.get("RuleID", ""),
                )
            )
        for m in result.get("Misconfigurations") or []:
            cause = m.get("CauseMetadata") or {}
            findings.append(
                RawFinding(
                    file_path=target,
                    line_number=cause.get("StartLine", 0) or 0,
                    description=m.get("Title") or m.get("Message", ""),
                    severity=m.get("Severity", ""),
                    rule_id=m.get("ID", ""),
                    remediation=m.get("Resolution", ""),
                )
            )
    return findings


def parse_semgrep(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "semgrep")
    findings = []
    for r in data.get("results") or []:
        extra = r.get("extra") or {}
        findings.append(
            RawFinding(
                file_path=r.get("path", ""),
                line_number=(r.get("start") or {}).get("line", 0) or 0,
                description=extra.get("message", ""),
                severity=extra.get("severity", ""),
                rule_id=r.get("check_id", ""),
                remediation=f"Suggested fix: {extra['fix']}" if extra.get("fix") else "",
            )
        )
    return findings


def parse_trufflehog(output: str) -> list[RawFinding]:
    findings = []
    for obj in _json_lines(output):
        detector = obj.get("DetectorName")
        if not detector:
            # Log lines and progress messages, not findings
            continue
        fs = ((obj.get("SourceMetadata") or {}).get("Data") or {}).get("Filesystem") or {}
        path = fs.get("file", "")
        # Clone artifacts under .git are not repository content
        if "/.git/" in path or path.endswith("/.git") or path.startswith(".git/"):
            continue
        verified = " (verified)" if obj.get("Verified") else ""
        findings.append(
            RawFinding(
                file_path=path,
                line_number=fs.get("line", 0) or 0,
                description=f"Secret detected: {detector}{verified}",
                severity="critical" if obj.get("Verified") else "high",
                rule_id=detector,
            )
        )
    return findings


def parse_gitleaks(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_json(output, "gitleaks")
    if not isinstance(data, list):
        raise ParseError("gitleaks: expected a JSON array")
    return [
        RawFinding(
            file_path=r.get("File", ""),
            line_number=r.get("StartLine", 0) or 0,
            description=r.get("Description") or f"Secret detected: {r.get('RuleID', '')}",
            severity="high",
            rule_id=r.get("RuleID", ""),
        )
        for r in data
    ]


def parse_govulncheck(output: str) -> list[RawFinding]:
    findings = []
    seen: set[tuple[str, str, int]] = set()
    for obj in _json_lines(output):
        finding = obj.get("finding")
        if not finding or not finding.get("osv"):
            continue
        trace = finding.get("trace") or []
        position = (trace[0].get("position") or {}) if trace else {}
        path = position.get("filename", "")
        line = position.get("line", 0) or 0
        key = (finding["osv"], path, line)
        if key in seen:
            continue
        seen.add(key)
        module = trace[0].get("module", "") if trace else ""
        fixed = finding.get("fixed_version", "")
        findings.append(
            RawFinding(
                file_path=path or "go.mod",
                line_number=line,
                description=f"Go vulnerability: {finding['osv']}",
                severity="high",
                rule_id=finding["osv"],
                remediation=_upgrade_hint(module, "", [fixed] if fixed else []),
            )
        )
    return findings


def parse_bandit(output: str) -> list[RawFinding]:
    # Bandit may print log lines before the JSON document
    start = output.find("{")
    if start == -1:
        if output.strip():
            raise ParseError("bandit: no JSON document in output")
        return []
    data = _load_object(output[start:], "bandit")
    return [
        RawFinding(
            file_path=r.get("filename", ""),
            line_number=r.get("line_number", 0) or 0,
            description=r.get("issue_text", ""),
            severity=r.get("issue_severity", ""),
            rule_id=r.get("test_id", ""),
        )
        for r in data.get("results") or []
    ]


def parse_pip_audit(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_json(output, "pip-audit")
    # Older releases emit a bare list of dependencies
    deps = data.get("dependencies", []) if isinstance(data, dict) else data
    findings = []
    for dep in deps or []:
        name = dep.get("name", "")
        version = dep.get("version", "")
        for vuln in dep.get("vulns") or []:
            desc = vuln.get("description") or vuln.get("id", "")
            findings.append(
                RawFinding(
                    file_path="requirements.txt",
                    description=f"{name}@{version}: {desc}",
                    severity="high",
                    rule_id=vuln.get("id", ""),
                    remediation=_upgrade_hint(name, version, vuln.get("fix_versions")),
                )
            )
    return findings


def parse_safety(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_json(output, "safety")
    findings = []

    if isinstance(data, list):
        # Legacy format: [name, spec, version, advisory, id, ...]
        for row in data:
            if not isinstance(row, list) or len(row) < 5:
                continue
            findings.append(
                RawFinding(
                    file_path="requirements.txt",
                    description=f"{row[0]}: {row[3]}",
                    severity="high",
                    rule_id=str(row[4]),
                )
            )
        return findings

    for vuln in data.get("vulnerabilities") or []:
        name = vuln.get("package_name", "")
        findings.append(
            RawFinding(
                file_path="requirements.txt",
                description=f"{name}: {vuln.get('advisory', '')}",
                severity=_safety_severity(vuln.get("severity")),
                rule_id=str(vuln.get("vulnerability_id", "")),
                remediation=_upgrade_hint(
                    name,
                    vuln.get("analyzed_version", ""),
                    vuln.get("fixed_versions"),
                ),
            )
        )
    return findings


def _safety_severity(raw) -> str:
    # Authenticated safety 2.x reports {"source": ..., "cvssv3": {"base_severity": ...}}
    if isinstance(raw, dict):
        for key in ("cvssv3", "cvssv2"):
            cvss = raw.get(key)
            if isinstance(cvss, dict) and isinstance(cvss.get("base_severity"), str):
                return cvss["base_severity"]
        return "high"
    if isinstance(raw, str) and raw:
        return raw
    return "high"


def parse_npm_audit(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "npm-audit")
    findings = []
    for name, vuln in sorted((data.get("vulnerabilities") or {}).items()):
        titles = [v.get("title", "") for v in vuln.get("via") or [] if isinstance(v, dict)]
        title = titles[0] if titles else f"Vulnerability in {name}"
        fix = vuln.get("fixAvailable")
        remediation = ""
        if isinstance(fix, dict):
            remediation = f"Upgrade {fix.get('name', name)} to {fix.get('version', 'a patched version')}."
        elif fix is True:
            remediation = "Run `npm audit fix` to upgrade to a patched version."
        findings.append(
            RawFinding(
                file_path="package.json",
                description=f"{name}: {title}",
                severity=vuln.get("severity", ""),
                rule_id=name,
                remediation=remediation,
            )
        )
    return findings


def parse_cargo_audit(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "cargo-audit")
    findings = []
    for item in (data.get("vulnerabilities") or {}).get("list") or []:
        advisory = item.get("advisory") or {}
        package = item.get("package") or {}
        versions = item.get("versions") or {}
        findings.append(
            RawFinding(
                file_path="Cargo.toml",
                description=(
                    f"{package.get('name', '')}@{package.get('version', '')}: "
                    f"{advisory.get('title', '')}"
                ),
                severity="high",
                rule_id=advisory.get("id", ""),
                remediation=_upgrade_hint(
                    package.get("name", ""),
                    package.get("version", ""),
                    versions.get("patched"),
                ),
            )
        )
    return findings


def parse_bundler_audit(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "bundler-audit")
    findings = []
    for r in data.get("results") or []:
        gem = r.get("gem") or {}
        advisory = r.get("advisory") or {}
        findings.append(
            RawFinding(
                file_path="Gemfile.lock",
                description=(
                    f"{gem.get('name', '')}@{gem.get('version', '')}: "
                    f"{advisory.get('title', '')}"
                ),
                severity=advisory.get("criticality") or "high",
                rule_id=advisory.get("id", "") or advisory.get("cve", ""),
                remediation=_upgrade_hint(
                    gem.get("name", ""),
                    gem.get("version", ""),
                    advisory.get("patched_versions"),
                ),
            )
        )
    return findings


_BRAKEMAN_CONFIDENCE = {"high": "high", "weak": "low"}


def parse_brakeman(output: str) -> list[RawFinding]:
    if not output.strip():
        return []
    data = _load_object(output, "brakeman")
    return [
        RawFinding(
            file_path=w.get("file", ""),
            line_number=w.get("line", 0) or 0,
            description=f"{w.get('warning_type', '')}: {w.get('message', '')}",
            severity=_BRAKEMAN_CONFIDENCE.get(str(w.get("confidence", "")).lower(), "medium"),
            rule_id=w.get("warning_type", ""),
        )
        for w in data.get("warnings") or []
    ]
