#!/usr/bin/env python3
"""
Create an election with its candidates and eligible voter list.

The election definition is a JSON file:

    {"name": "...", "type": "PRESIDENTIAL",
     "candidates": [{"name": "...", "description": "..."}, ...],
     "voters": ["<voter identity hash>", ...]}

Voters are added in list order, which fixes their leaf order in the
commitment tree.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ballotproof.analysis.lifecycle import ElectionLifecycle  # noqa: E402
from ballotproof.data.database import ElectionDatabase  # noqa: E402
from ballotproof.data.models import ElectionType  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Create an election")
    parser.add_argument("definition", help="Path to election definition JSON")
    parser.add_argument("--db", required=True, help="Path to DuckDB database file")
    parser.add_argument(
        "--open-registration",
        action="store_true",
        help="Move the election to REGISTRATION_OPEN after loading",
    )

    args = parser.parse_args()

    definition_path = Path(args.definition)
    if not definition_path.exists():
        logger.error(f"Definition file not found: {definition_path}")
        sys.exit(1)

    try:
        with open(definition_path, "r") as f:
            definition = json.load(f)

        with ElectionDatabase(args.db) as db:
            logger.info("=== Step 1: Creating Election ===")
            election_id = db.create_election(
                definition["name"], ElectionType(definition["type"])
            )
            print(f"✓ Election {election_id} ({definition['type']})")

            logger.info("=== Step 2: Adding Candidates ===")
            for candidate in definition.get("candidates", []):
                candidate_id = db.add_candidate(
                    election_id, candidate["name"], candidate.get("description")
                )
                print(f"  {candidate_id}: {candidate['name']}")

            logger.info("=== Step 3: Adding Eligible Voters ===")
            hashes = [h for h in definition.get("voters", []) if h]
            inserted = db.add_eligible_voters(election_id, hashes)
            print(f"✓ Added {inserted} eligible voters")
            if inserted < len(hashes):
                print(f"⚠️  Warning: skipped {len(hashes) - inserted} duplicate voters")

            if args.open_registration:
                ElectionLifecycle(db).open_registration(election_id)
                print("✓ Registration open")

    except Exception as e:
        logger.error(f"Error setting up election: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
