import argparse
import json
import os
from nilcc_verifier.hashing import docker_compose_hash
from nilcc_verifier.providers.workload import fetch_measurement

RECORD_PATH = "measurement-hash.json"
COMPOSE_PATH = "docker-compose.yml"


def update_verification(
    version: str,
    report_url: str,
    compose_path: str = COMPOSE_PATH,
    record_path: str = RECORD_PATH,
):
    """
    Rewrite the version-keyed measurement record read by the badge endpoint.

    The existing ``allowedDomains`` list is carried over; the record keeps a
    single version entry.
    """
    with open(compose_path, "r", encoding="utf-8", newline="") as f:
        compose_hash = docker_compose_hash(f.read())
    print(f"DOCKER_COMPOSE_HASH={compose_hash}")

    print(f"Fetching measurement from {report_url}...")
    measurement = fetch_measurement(report_url)
    if not measurement:
        raise SystemExit("Measurement not found in workload report")

    allowed_domains = []
    if os.path.exists(record_path):
        with open(record_path, "r") as f:
            previous = json.load(f)
        for entry in previous.values():
            if isinstance(entry, dict):
                allowed_domains = entry.get("allowedDomains") or allowed_domains

    record = {
        version: {
            "measurement_hash": measurement,
            "docker_compose_hash": compose_hash,
            "allowedDomains": allowed_domains,
        }
    }
    with open(record_path, "w") as f:
        json.dump(record, f, indent=2)
        f.write("\n")
    print(f"Successfully updated {record_path} for nilCC {version}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=update_verification.__doc__)
    parser.add_argument("version", help="nilCC artifacts version, e.g. 0.3.6")
    parser.add_argument("report_url", help="https://<domain>/nilcc/api/v2/report")
    parser.add_argument("--compose", default=COMPOSE_PATH)
    parser.add_argument("--output", default=RECORD_PATH)
    args = parser.parse_args()
    update_verification(args.version, args.report_url, args.compose, args.output)
