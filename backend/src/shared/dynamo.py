"""
DynamoDB utility functions.

Reads and unconditional writes raise PersistenceError when the store fails.
Conditional writes report a failed condition as a False/None return value
instead, since callers treat that as a lost race, not an outage.
"""
import boto3
from typing import List, Dict, Any, Optional
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError
from shared.config import config
from shared.errors import PersistenceError
from shared.logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)
_serializer = TypeSerializer()

CONDITIONAL_FAILURE = 'ConditionalCheckFailedException'
TRANSACTION_CANCELED = 'TransactionCanceledException'


def _error_code(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '')
    return ''


def get_item(table_name: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB (strongly consistent)."""
    try:
        table = dynamodb.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=True)
        return response.get('Item')
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise PersistenceError(f"Could not read from {table_name}") from e


def put_item(
    table_name: str,
    item: Dict[str, Any],
    condition_expression: Optional[Any] = None
) -> bool:
    """
    Put an item, optionally guarded by a condition.

    Returns:
        True if written, False if the condition failed
    """
    try:
        table = dynamodb.Table(table_name)
        params = {'Item': item}
        if condition_expression is not None:
            params['ConditionExpression'] = condition_expression
        table.put_item(**params)
        return True
    except ClientError as e:
        if _error_code(e) == CONDITIONAL_FAILURE:
            return False
        logger.error(f"Error writing item to {table_name}: {e}")
        raise PersistenceError(f"Could not write to {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error writing item to {table_name}: {e}")
        raise PersistenceError(f"Could not write to {table_name}") from e


def delete_item(table_name: str, key: Dict[str, Any], condition_expression: Optional[Any] = None) -> bool:
    """Delete an item. Returns False if the condition failed."""
    try:
        table = dynamodb.Table(table_name)
        params = {'Key': key}
        if condition_expression is not None:
            params['ConditionExpression'] = condition_expression
        table.delete_item(**params)
        return True
    except ClientError as e:
        if _error_code(e) == CONDITIONAL_FAILURE:
            return False
        logger.error(f"Error deleting item from {table_name}: {e}")
        raise PersistenceError(f"Could not delete from {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error deleting item from {table_name}: {e}")
        raise PersistenceError(f"Could not delete from {table_name}") from e


def query(
    table_name: str,
    index_name: Optional[str] = None,
    key_condition: Optional[Any] = None,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True,
    consistent_read: bool = False
) -> List[Dict[str, Any]]:
    """
    Query DynamoDB table or index, following pagination.

    Args:
        table_name: Name of the DynamoDB table
        index_name: Optional GSI name
        key_condition: Key condition expression
        filter_expression: Optional filter expression
        limit: Max items to return (None = all)
        scan_forward: True for ascending, False for descending
        consistent_read: strongly consistent read (base table only, not GSIs)

    Returns:
        List of items matching the query
    """
    query_params = {
        'ScanIndexForward': scan_forward
    }
    if index_name:
        query_params['IndexName'] = index_name
    if key_condition is not None:
        query_params['KeyConditionExpression'] = key_condition
    if filter_expression is not None:
        query_params['FilterExpression'] = filter_expression
    if consistent_read:
        query_params['ConsistentRead'] = True

    items: List[Dict[str, Any]] = []
    try:
        table = dynamodb.Table(table_name)
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            query_params['ExclusiveStartKey'] = last_key
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error querying {table_name}: {e}")
        raise PersistenceError(f"Could not query {table_name}") from e

    return items[:limit] if limit else items


def scan(
    table_name: str,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Scan a table, following pagination until `limit` items are collected."""
    scan_params = {}
    if filter_expression is not None:
        scan_params['FilterExpression'] = filter_expression

    items: List[Dict[str, Any]] = []
    try:
        table = dynamodb.Table(table_name)
        while True:
            response = table.scan(**scan_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            scan_params['ExclusiveStartKey'] = last_key
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error scanning {table_name}: {e}")
        raise PersistenceError(f"Could not scan {table_name}") from e

    return items[:limit] if limit else items


def update_item(
    table_name: str,
    key: Dict[str, Any],
    update_expression: str,
    expression_values: Dict[str, Any],
    expression_names: Optional[Dict[str, str]] = None,
    condition_expression: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Update an item in DynamoDB.

    Returns:
        The updated item (ALL_NEW), or None if the condition failed
    """
    try:
        table = dynamodb.Table(table_name)

        params = {
            'Key': key,
            'UpdateExpression': update_expression,
            'ExpressionAttributeValues': expression_values,
            'ReturnValues': 'ALL_NEW'
        }

        if expression_names:
            params['ExpressionAttributeNames'] = expression_names
        if condition_expression:
            params['ConditionExpression'] = condition_expression

        response = table.update_item(**params)
        return response.get('Attributes', {})

    except ClientError as e:
        if _error_code(e) == CONDITIONAL_FAILURE:
            logger.info(f"Conditional update on {table_name} {key} did not apply")
            return None
        logger.error(f"Error updating item in {table_name}: {e}")
        raise PersistenceError(f"Could not update {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error updating item in {table_name}: {e}")
        raise PersistenceError(f"Could not update {table_name}") from e


def serialize(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert plain values to the low-level client's typed attribute format."""
    return {k: _serializer.serialize(v) for k, v in values.items()}


def transact_update(updates: List[Dict[str, Any]]) -> bool:
    """
    Apply several single-item updates atomically.

    Each update is a dict with TableName, Key, UpdateExpression,
    ExpressionAttributeValues and optional ExpressionAttributeNames /
    ConditionExpression, written with plain Python values.

    Returns:
        True if committed, False if any condition failed
    """
    transact_items = []
    for update in updates:
        request = {
            'TableName': update['TableName'],
            'Key': serialize(update['Key']),
            'UpdateExpression': update['UpdateExpression'],
            'ExpressionAttributeValues': serialize(update['ExpressionAttributeValues']),
        }
        if update.get('ExpressionAttributeNames'):
            request['ExpressionAttributeNames'] = update['ExpressionAttributeNames']
        if update.get('ConditionExpression'):
            request['ConditionExpression'] = update['ConditionExpression']
        transact_items.append({'Update': request})

    try:
        dynamodb.meta.client.transact_write_items(TransactItems=transact_items)
        return True
    except ClientError as e:
        if _error_code(e) == TRANSACTION_CANCELED:
            # Cancellation reasons follow TransactItems order; a ConditionalCheckFailed
            # means another writer got there first.
            logger.info(f"Transaction cancelled: {e.response.get('CancellationReasons')}")
            return False
        logger.error(f"Error in transactional write: {e}")
        raise PersistenceError('Could not commit transaction') from e
    except BotoCoreError as e:
        logger.error(f"Error in transactional write: {e}")
        raise PersistenceError('Could not commit transaction') from e
