"""
Load donors or organ requests from a CSV file into DynamoDB.

    python -m data.dynamo_upload --kind donors --csv donors.csv
    python -m data.dynamo_upload --kind requests --csv requests.csv --profile organconnect-admin
"""

import argparse
import logging
import sys

import boto3
import pandas as pd

from backend.logging_config import setup_logging
from backend.models import Donor, OrganRequest

logger = logging.getLogger(__name__)

INTEGER_COLUMNS = {"age"}
LIST_COLUMNS = {"organs"}

PARSERS = {
    "donors": Donor.from_item,
    "requests": OrganRequest.from_item,
}


def row_to_item(row):
    """One CSV row as a DynamoDB item; blank cells are left out"""
    item = {}
    for col, value in row.items():
        if pd.isna(value):
            continue
        if col in INTEGER_COLUMNS:
            item[col] = int(value)
        elif col in LIST_COLUMNS:
            item[col] = [v.strip().lower() for v in str(value).split(";") if v.strip()]
        else:
            item[col] = str(value).strip()
    return item


def load_items(csv_path, kind):
    """Read the CSV and check each row parses as a donor / request before upload"""
    df = pd.read_csv(csv_path, dtype={"id": str})
    items = [row_to_item(row) for _, row in df.iterrows()]
    for item in items:
        PARSERS[kind](item)
    return items


def upload(table, items):
    with table.batch_writer() as batch:
        for item in items:
            batch.put_item(Item=item)
    return len(items)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed OrganConnect tables from CSV")
    parser.add_argument("--kind", choices=sorted(PARSERS), required=True)
    parser.add_argument("--csv", dest="csv_path", required=True)
    parser.add_argument("--table", help="table name (defaults to --kind)")
    parser.add_argument("--profile", default=None, help="AWS profile to use")
    parser.add_argument("--region", default="us-east-1")
    args = parser.parse_args(argv)

    setup_logging()
    items = load_items(args.csv_path, args.kind)

    session = boto3.Session(profile_name=args.profile, region_name=args.region)
    table = session.resource("dynamodb").Table(args.table or args.kind)
    count = upload(table, items)

    logger.info("Uploaded %d %s to %s", count, args.kind, table.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
