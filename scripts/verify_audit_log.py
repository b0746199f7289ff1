#!/usr/bin/env python3
"""
Re-verify an exported audit log independently of the server.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ballotproof.analysis.verification import AuditLogVerifier  # noqa: E402
from ballotproof.crypto.groth16 import Groth16Verifier  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Verify an exported audit log")
    parser.add_argument(
        "--audit", required=True, help="Path to audit log JSON (GET .../audit-logs)"
    )
    parser.add_argument(
        "--vkey", required=True, help="Path to the Groth16 verification key"
    )
    parser.add_argument("--root", help="Expected eligibility root")
    parser.add_argument(
        "--tally", help="Path to published tally JSON (GET .../tally) to compare"
    )
    parser.add_argument("--export", help="Export verification report to file")

    args = parser.parse_args()

    for path in filter(None, (args.audit, args.vkey, args.tally)):
        if not Path(path).exists():
            logger.error(f"File not found: {path}")
            sys.exit(1)

    try:
        with open(args.audit, "r") as f:
            entries = json.load(f)

        published_tally = None
        if args.tally:
            with open(args.tally, "r") as f:
                published_tally = json.load(f).get("tally", {})

        logger.info("=== Loading Verification Key ===")
        verifier = AuditLogVerifier(
            Groth16Verifier.from_file(args.vkey), expected_root=args.root
        )

        logger.info("=== Verifying Entries ===")
        results = verifier.verify_log(entries, published_tally)

        report = verifier.generate_verification_report(results)
        print(report)

        if args.export:
            export_path = Path(args.export)
            with open(export_path, "w") as f:
                f.write(report)
            print(f"\n✓ Verification report exported to: {export_path}")

            entries_path = export_path.with_stem(export_path.stem + "_entries").with_suffix(".csv")
            results["entry_checks"].to_csv(entries_path, index=False)
            print(f"✓ Per-entry results exported to: {entries_path}")

    except Exception as e:
        logger.error(f"Error during verification: {e}")
        sys.exit(1)

    if results["verification_passed"]:
        print("\n🎉 Verification PASSED!")
        sys.exit(0)
    print("\n⚠️  Verification FAILED - see report above for details")
    sys.exit(1)


if __name__ == "__main__":
    main()
