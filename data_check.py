import argparse
import os
from dotenv import load_dotenv

from app.errors import PersistenceFailure
from app.repos.firestore_repo import JobRepo

load_dotenv()

FIRESTORE_PROJECT = os.getenv("FIRESTORE_PROJECT")

if not FIRESTORE_PROJECT:
    raise SystemExit("Missing FIRESTORE_PROJECT in .env")

parser = argparse.ArgumentParser(
    description="Check job records whose resultCount drifted from len(results)."
)
parser.add_argument("--fix", action="store_true", help="rewrite the drifted counters")
args = parser.parse_args()

repo = JobRepo(project=FIRESTORE_PROJECT)
if not repo.enabled():
    raise SystemExit("Firestore client could not be created (check credentials)")

# ----------------------------
# 1) Print mismatches
# ----------------------------
try:
    mismatches = repo.find_count_mismatches()
except PersistenceFailure as e:
    raise SystemExit(f"[ERROR] Firestore error: {e}")

if not mismatches:
    print("All job records are consistent.")
    raise SystemExit(0)

print("\n=== resultCount mismatches ===")
for job in mismatches:
    results = job.get("results")
    actual = len(results) if isinstance(results, list) else 0
    recorded = (job.get("counters") or {}).get("resultCount", 0)
    print(f"- {job['category']}/{job['id']} batch={job.get('batchId')!r} "
          f"recorded={recorded} actual={actual}")

# ----------------------------
# 2) Optionally repair
# ----------------------------
if not args.fix:
    print("\nRun again with --fix to repair these records.")
    raise SystemExit(0)

try:
    fixed = repo.repair_result_counts()
    print(f"\nFixed {fixed} job records.")
except PersistenceFailure as e:
    print(f"[ERROR] Repair failed: {e}")
    raise SystemExit(1)
