import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from ..crypto.codec import field_to_uuid
from ..crypto.groth16 import ProofVerifier
from ..errors import InvalidFieldElement

logger = logging.getLogger(__name__)


class AuditLogVerifier:
    """
    Independent re-verification of an exported audit log.

    Re-checks each proof against its public signals, flags repeated
    nullifiers and foreign roots, and rebuilds per-candidate counts from the
    vote signal so a published tally can be compared against it.
    """

    def __init__(self, verifier: ProofVerifier, expected_root: Optional[str] = None):
        self.verifier = verifier
        self.expected_root = expected_root

    def verify_entries(self, entries: List[Dict[str, Any]]) -> pd.DataFrame:
        """One row per audit entry with the outcome of each check."""
        rows = []
        seen_nullifiers = set()

        for entry in entries:
            signals = entry.get("public_signals") or []
            nullifier = entry.get("nullifier_hash")
            well_formed = isinstance(signals, list) and len(signals) == 4

            candidate_id = None
            if well_formed:
                try:
                    candidate_id = field_to_uuid(signals[2])
                except InvalidFieldElement:
                    well_formed = False

            proof_valid = bool(
                well_formed and self.verifier.verify(signals, entry.get("proof") or {})
            )
            root_matches = bool(
                well_formed
                and (self.expected_root is None or signals[0] == self.expected_root)
            )
            nullifier_matches = bool(well_formed and signals[3] == nullifier)
            duplicate = nullifier in seen_nullifiers
            seen_nullifiers.add(nullifier)

            rows.append(
                {
                    "id": entry.get("id"),
                    "nullifier_hash": nullifier,
                    "candidate_id": candidate_id,
                    "proof_valid": proof_valid,
                    "root_matches": root_matches,
                    "nullifier_matches": nullifier_matches,
                    "duplicate_nullifier": duplicate,
                }
            )

        df = pd.DataFrame(
            rows,
            columns=[
                "id",
                "nullifier_hash",
                "candidate_id",
                "proof_valid",
                "root_matches",
                "nullifier_matches",
                "duplicate_nullifier",
            ],
        )
        if not df.empty:
            df["valid"] = (
                df["proof_valid"]
                & df["root_matches"]
                & df["nullifier_matches"]
                & ~df["duplicate_nullifier"]
            )
        else:
            df["valid"] = pd.Series(dtype=bool)
        return df

    def verify_log(
        self,
        entries: List[Dict[str, Any]],
        published_tally: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """
        Verify every entry and, if given, compare the recounted tally with the
        published one.
        """
        logger.info(f"Verifying audit log with {len(entries)} entries")
        checks = self.verify_entries(entries)

        valid = checks[checks["valid"]] if not checks.empty else checks
        recount = {
            str(k): int(v) for k, v in valid["candidate_id"].value_counts().items()
        }

        tally_differences = {}
        if published_tally is not None:
            for candidate_id in set(recount) | set(published_tally):
                published = int(published_tally.get(candidate_id, 0))
                recounted = recount.get(candidate_id, 0)
                if published != recounted:
                    tally_differences[candidate_id] = {
                        "published": published,
                        "recounted": recounted,
                    }

        invalid_count = int(len(checks) - len(valid))
        if invalid_count:
            logger.warning(f"{invalid_count} audit entries failed verification")

        return {
            "total_entries": int(len(checks)),
            "valid_entries": int(len(valid)),
            "invalid_entries": checks[~checks["valid"]]["id"].tolist()
            if not checks.empty
            else [],
            "duplicate_nullifiers": checks[checks["duplicate_nullifier"]][
                "nullifier_hash"
            ].tolist()
            if not checks.empty
            else [],
            "recounted_tally": recount,
            "tally_differences": tally_differences,
            "verification_passed": invalid_count == 0 and not tally_differences,
            "entry_checks": checks,
        }

    def generate_verification_report(self, results: Dict[str, Any]) -> str:
        """Human-readable summary of verify_log() output."""
        report = []
        report.append("=" * 60)
        report.append("AUDIT LOG VERIFICATION REPORT")
        report.append("=" * 60)

        if results["verification_passed"]:
            report.append("VERIFICATION PASSED - every admitted vote re-verifies")
        else:
            report.append("VERIFICATION FAILED - discrepancies found")

        report.append("")
        report.append(f"Entries: {results['total_entries']}")
        report.append(f"Valid entries: {results['valid_entries']}")

        if results["invalid_entries"]:
            report.append(f"Invalid entries: {', '.join(map(str, results['invalid_entries']))}")
        if results["duplicate_nullifiers"]:
            report.append(
                f"Duplicate nullifiers: {', '.join(map(str, results['duplicate_nullifiers']))}"
            )

        report.append("")
        report.append("RECOUNTED TALLY:")
        for candidate_id, votes in sorted(
            results["recounted_tally"].items(), key=lambda item: (-item[1], item[0])
        ):
            report.append(f"  {candidate_id}: {votes}")

        if results["tally_differences"]:
            report.append("")
            report.append("DIFFERENCES FROM PUBLISHED TALLY:")
            for candidate_id, diff in results["tally_differences"].items():
                report.append(
                    f"  {candidate_id}: Published={diff['published']}, Recounted={diff['recounted']}"
                )

        return "\n".join(report)
