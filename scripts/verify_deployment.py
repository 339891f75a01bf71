#!/usr/bin/env python3
"""
Deployment Verification Script

Verifies the relay's components are importable and behave as expected.
Run before deploying to production or after any changes.

Usage:
    python scripts/verify_deployment.py
    python scripts/verify_deployment.py --server-url http://localhost:3000
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional, Tuple

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

Check = Tuple[str, bool, str]


class Colors:
    """ANSI color codes for terminal output."""
    GREEN = '\033[92m'
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BLUE = '\033[94m'
    RESET = '\033[0m'
    BOLD = '\033[1m'


def passed(msg: str) -> str:
    return f"{Colors.GREEN}✓ PASS{Colors.RESET} {msg}"


def failed(msg: str, error: str = "") -> str:
    err_msg = f" ({error})" if error else ""
    return f"{Colors.RED}✗ FAIL{Colors.RESET} {msg}{err_msg}"


def warned(msg: str) -> str:
    return f"{Colors.YELLOW}! WARN{Colors.RESET} {msg}"


def section(title: str) -> str:
    return f"\n{Colors.BOLD}{Colors.BLUE}=== {title} ==={Colors.RESET}"


def verify_imports() -> List[Check]:
    """Verify all critical imports work."""
    modules = [
        "core.config",
        "core.errors",
        "core.rate_limiter",
        "core.credentials",
        "services.generation",
        "services.image_generation",
        "services.video_generation",
        "services.api.server",
        "cli.progress_monitor",
    ]
    results = []
    for module in modules:
        try:
            __import__(module)
            results.append((module, True, ""))
        except Exception as e:
            results.append((module, False, str(e)))
    return results


def verify_configuration() -> List[str]:
    """Configuration issues. Reported as warnings: a relay can run with one provider."""
    from core.config import get_config

    return get_config().validate()


def verify_rate_limiter() -> List[Check]:
    """Verify fixed-window admission with a fake clock."""
    results = []

    try:
        from core.rate_limiter import RateLimiter

        now = [0.0]
        limiter = RateLimiter(window_seconds=60, max_requests=3, clock=lambda: now[0])

        allowed = [limiter.admit("verify").allowed for _ in range(3)]
        denied = limiter.admit("verify")
        if all(allowed) and not denied.allowed:
            results.append(("Cap admitted, next request denied", True, ""))
        else:
            results.append(("Cap admitted, next request denied", False, f"allowed={allowed}"))

        now[0] = 61.0
        decision = limiter.admit("verify")
        if decision.allowed and decision.count == 1:
            results.append(("Window reset restarts count at 1", True, ""))
        else:
            results.append(("Window reset restarts count at 1", False, f"count={decision.count}"))

    except Exception as e:
        results.append(("Rate limiter", False, str(e)))

    return results


def verify_validation() -> List[Check]:
    """Verify request validation rules."""
    results = []

    try:
        from core.errors import InvalidAspectRatio, InvalidDuration, MissingPrompt
        from services.generation import GenerationType, validate_request

        request = validate_request({"prompt": "  a red fox  "}, "image")
        if request.prompt == "a red fox" and request.generation_type == GenerationType.TEXT_TO_IMAGE:
            results.append(("Image defaults (1:1, text-to-image)", True, ""))
        else:
            results.append(("Image defaults (1:1, text-to-image)", False, repr(request)))

        for name, raw, mode, error in (
            ("Empty prompt rejected", {"prompt": "   "}, "image", MissingPrompt),
            ("Unknown aspect ratio rejected", {"prompt": "x", "aspectRatio": "2:1"}, "image", InvalidAspectRatio),
            ("seconds=120 rejected", {"prompt": "x", "seconds": 120}, "video", InvalidDuration),
        ):
            try:
                validate_request(raw, mode)
                results.append((name, False, "accepted"))
            except error:
                results.append((name, True, ""))

    except Exception as e:
        results.append(("Validation", False, str(e)))

    return results


async def verify_server(server_url: str) -> List[Check]:
    """Verify a running relay responds."""
    from cli.progress_monitor import RelayClient, RelayError

    results = []

    async with RelayClient(server_url, timeout_seconds=10) as relay:
        try:
            data = await relay.check_health()
            results.append((
                "GET /health",
                data.get("status") == "ok",
                f"image={data.get('imageGenerationAvailable')} video={data.get('videoGenerationAvailable')}",
            ))
        except Exception as e:
            results.append(("GET /health", False, str(e)))

        try:
            await relay.generate_image("   ")
            results.append(("POST /generate-image rejects empty prompt", False, "accepted"))
        except RelayError as e:
            results.append(("POST /generate-image rejects empty prompt", e.status == 400, f"status={e.status}"))
        except Exception as e:
            results.append(("POST /generate-image rejects empty prompt", False, str(e)))

    return results


def print_checks(results: List[Check]) -> bool:
    ok = True
    for name, passed_check, error in results:
        if passed_check:
            print(passed(name))
        else:
            print(failed(name, error))
            ok = False
    return ok


def run_verification(server_url: Optional[str] = None) -> bool:
    """Run all verification checks."""
    all_passed = True

    print(section("Import Verification"))
    all_passed &= print_checks(verify_imports())

    print(section("Configuration"))
    try:
        issues = verify_configuration()
        for issue in issues:
            print(warned(issue))
        if not issues:
            print(passed("No configuration issues"))
    except Exception as e:
        print(failed("Configuration", str(e)))
        all_passed = False

    print(section("Rate Limiter"))
    all_passed &= print_checks(verify_rate_limiter())

    print(section("Request Validation"))
    all_passed &= print_checks(verify_validation())

    # Server (if URL provided)
    if server_url:
        print(section("Server Endpoints"))
        all_passed &= print_checks(asyncio.run(verify_server(server_url)))

    # Summary
    print(section("Summary"))
    if all_passed:
        print(f"{Colors.GREEN}{Colors.BOLD}All verification checks passed!{Colors.RESET}")
    else:
        print(f"{Colors.RED}{Colors.BOLD}Some verification checks failed.{Colors.RESET}")
        print("\nFix the issues above before deploying.")

    return all_passed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify relay deployment readiness")
    parser.add_argument("--server-url", "-s",
                        help="Server URL to test endpoints (e.g., http://localhost:3000)")
    args = parser.parse_args()

    success = run_verification(args.server_url)
    sys.exit(0 if success else 1)
