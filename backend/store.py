import logging

import boto3
from botocore.exceptions import ClientError

from backend.models import RequestStatus

logger = logging.getLogger(__name__)


def scan_all(table):
    """Read every item of a DynamoDB table, following LastEvaluatedKey pages"""
    response = table.scan()
    items = response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
        items.extend(response.get("Items", []))
    return items


class DynamoOrganStore:
    """Raw donor / organ request items kept in two DynamoDB tables"""

    def __init__(self, donors_table, requests_table):
        self.donors_table = donors_table
        self.requests_table = requests_table

    @classmethod
    def from_config(cls, region, donors_table="donors", requests_table="requests", endpoint_url=None):
        dynamodb = boto3.resource("dynamodb", region_name=region, endpoint_url=endpoint_url or None)
        return cls(dynamodb.Table(donors_table), dynamodb.Table(requests_table))

    def list_donors(self):
        return scan_all(self.donors_table)

    def list_requests(self):
        return scan_all(self.requests_table)

    def get_request(self, request_id):
        return self.requests_table.get_item(Key={"id": request_id}).get("Item")

    def set_request_status(self, request_id, target: RequestStatus):
        """
        Move a Pending request to ``target``.

        Returns the updated item, or None when the request was no longer
        Pending by the time the write landed.
        """
        try:
            response = self.requests_table.update_item(
                Key={"id": request_id},
                UpdateExpression="SET #status = :target",
                ConditionExpression="#status = :pending",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":target": target.value,
                    ":pending": RequestStatus.PENDING.value,
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                logger.info("Status write for request %s lost a race", request_id)
                return None
            raise
        return response.get("Attributes")
