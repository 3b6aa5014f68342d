# sentinelhub/compliance/frameworks.py
"""
Static control taxonomies for the compliance mapper.

Each framework is a mapping of control id → (description, keywords).
A finding hits a control when any keyword occurs in its lower-cased
"type message" text.
"""

from __future__ import annotations

from typing import Dict, Tuple

Control = Tuple[str, Tuple[str, ...]]


OWASP_TOP_10: Dict[str, Control] = {
    "A01:2021-Broken Access Control": (
        "Broken Access Control",
        ("access-control", "authorization", "privilege-escalation", "idor",
         "path-traversal", "public-read-access", "public-write-access", "policy-public-access"),
    ),
    "A02:2021-Cryptographic Failures": (
        "Cryptographic Failures",
        ("weak-crypto", "insecure-hash", "no-encryption", "encryption-disabled",
         "hardcoded-key", "weak-ssl", "private-key"),
    ),
    "A03:2021-Injection": (
        "Injection",
        ("sql-injection", "command-injection", "code-injection", "ldap-injection",
         "xpath-injection", "eval", "xss"),
    ),
    "A04:2021-Insecure Design": (
        "Insecure Design",
        ("missing-rate-limit", "no-validation", "business-logic", "insecure-defaults"),
    ),
    "A05:2021-Security Misconfiguration": (
        "Security Misconfiguration",
        ("misconfiguration", "debug-enabled", "default-credentials", "verbose-errors",
         "unnecessary-features", "privileged-container", "host-network",
         "public-access-block-disabled"),
    ),
    "A06:2021-Vulnerable Components": (
        "Vulnerable and Outdated Components",
        ("outdated-dependency", "known-vulnerability", "vulnerable-dependency", "cve",
         "deprecated-function", "unpinned-image"),
    ),
    "A07:2021-Authentication Failures": (
        "Identification and Authentication Failures",
        ("weak-password", "session-fixation", "credential-stuffing", "no-mfa",
         "session-management", "password-field", "credential detected"),
    ),
    "A08:2021-Software Integrity Failures": (
        "Software and Data Integrity Failures",
        ("unsigned-code", "no-integrity-check", "insecure-deserialization",
         "deserialization", "supply-chain"),
    ),
    "A09:2021-Logging Failures": (
        "Security Logging and Monitoring Failures",
        ("insufficient-logging", "no-monitoring", "log-injection", "missing-audit",
         "logging-disabled"),
    ),
    "A10:2021-SSRF": (
        "Server-Side Request Forgery",
        ("ssrf", "open-redirect", "url-redirect", "unvalidated-redirect"),
    ),
}


NIST_CSF: Dict[str, Control] = {
    "ID.AM": ("Asset Management", ("asset-management", "inventory")),
    "ID.RA": ("Risk Assessment", ("vulnerability-assessment", "risk-assessment",
                                  "threat-intelligence", "vulnerable-dependency")),
    "PR.AC": ("Access Control", ("access-control", "authentication", "authorization",
                                 "identity-management", "public-read-access",
                                 "public-write-access", "policy-public-access")),
    "PR.AT": ("Awareness & Training", ("security-awareness", "training")),
    "PR.DS": ("Data Security", ("data-security", "encryption", "data-leak",
                                "sensitive-data", "sensitive-file", "credential")),
    "PR.IP": ("Information Protection", ("security-policy", "baseline", "configuration",
                                         "versioning-disabled")),
    "PR.MA": ("Maintenance", ("maintenance",)),
    "PR.PT": ("Protective Technology", ("protective-technology", "logging", "monitoring")),
    "DE.AE": ("Anomalies & Events", ("anomaly-detection", "event-detection")),
    "DE.CM": ("Continuous Monitoring", ("continuous-monitoring", "security-monitoring")),
    "DE.DP": ("Detection Processes", ("detection-process",)),
    "RS.RP": ("Response Planning", ("response-planning",)),
    "RS.CO": ("Communications", ("communications",)),
    "RS.AN": ("Analysis", ("analysis", "forensics")),
    "RS.MI": ("Mitigation", ("mitigation",)),
    "RS.IM": ("Improvements", ("improvements",)),
    "RC.RP": ("Recovery Planning", ("recovery-planning",)),
    "RC.IM": ("Recovery Improvements", ("recovery-improvements",)),
    "RC.CO": ("Recovery Communications", ("recovery-communications",)),
}


ISO_27001: Dict[str, Control] = {
    "A.5": ("Information Security Policies", ("security-policy", "information-security-policy")),
    "A.6": ("Organization of Information Security", ("organization", "internal-organization")),
    "A.7": ("Human Resource Security", ("human-resources", "employee-security")),
    "A.8": ("Asset Management", ("asset-management", "information-classification",
                                 "sensitive-file")),
    "A.9": ("Access Control", ("access-control", "authentication", "authorization",
                               "user-access", "public-read-access", "public-write-access",
                               "policy-public-access")),
    "A.10": ("Cryptography", ("cryptography", "encryption", "key-management", "private-key")),
    "A.11": ("Physical and Environmental Security", ("physical-security", "secure-areas")),
    "A.12": ("Operations Security", ("operations-security", "change-management",
                                     "capacity-management", "malware-protection",
                                     "logging-disabled")),
    "A.13": ("Communications Security", ("communications-security", "network-security",
                                         "information-transfer", "host-network")),
    "A.14": ("System Acquisition, Development", ("system-acquisition", "development",
                                                 "security-requirements", "injection", "xss")),
    "A.15": ("Supplier Relationships", ("supplier-relationships", "supply-chain",
                                        "vulnerable-dependency")),
    "A.16": ("Information Security Incident Management", ("incident-management",
                                                          "security-events",
                                                          "evidence-collection")),
    "A.17": ("Business Continuity Management", ("business-continuity", "redundancy",
                                                "versioning-disabled")),
    "A.18": ("Compliance", ("compliance", "legal-requirements", "privacy", "data-protection")),
}


# Deductions per hit, by severity.
OWASP_WEIGHTS = {"critical": 10, "high": 7, "medium": 4, "low": 2, "info": 1}
NIST_WEIGHTS = {"critical": 10, "high": 6, "medium": 3, "low": 1, "info": 0.5}
ISO_WEIGHTS = {"critical": 8, "high": 5, "medium": 3, "low": 1, "info": 0.5}

OWASP_DEFAULT_WEIGHT = 2
NIST_DEFAULT_WEIGHT = 1
ISO_DEFAULT_WEIGHT = 1

FRAMEWORK_BLEND = {"owasp": 0.4, "nist": 0.3, "iso27001": 0.3}

GRADE_STEPS = (
    (95, "A+"), (90, "A"), (85, "A-"),
    (80, "B+"), (75, "B"), (70, "B-"),
    (65, "C+"), (60, "C"), (55, "C-"),
    (50, "D"),
)
