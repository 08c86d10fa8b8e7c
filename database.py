"""
Document storage: images in S3, metadata in DynamoDB.

LocalDocumentStore keeps everything in memory for demo mode; both stores
accept the same save_document() call from ScanOrchestrator.save().
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from image_processing import base64_to_bytes, bytes_to_base64, thumbnail_bytes

logger = logging.getLogger("docscan.database")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _content_type(data: bytes) -> str:
    if data.startswith(b'\x89PNG'):
        return 'image/png'
    if data.startswith(b'\xff\xd8'):
        return 'image/jpeg'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    return 'application/octet-stream'


class DocumentStore(Protocol):
    """What the scanner needs from a persistence backend."""

    def save_document(
        self,
        document_id: str,
        processed_bytes: bytes,
        original_bytes: bytes,
        corners: List[List[float]],
        enhancement: str,
        file_name: str,
        file_size: int,
        created_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def get_document(self, document_id: str, include_images: bool = True) -> Optional[Dict[str, Any]]:
        ...

    def list_documents(self) -> List[Dict[str, Any]]:
        ...

    def delete_document(self, document_id: str) -> bool:
        ...


class LocalDocumentStore:
    """In-memory document store used when no AWS account is configured."""

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def save_document(
        self,
        document_id: str,
        processed_bytes: bytes,
        original_bytes: bytes,
        corners: List[List[float]],
        enhancement: str,
        file_name: str,
        file_size: int,
        created_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        timestamp = _timestamp()
        existing = self._documents.get(document_id)
        record = {
            'document_id': document_id,
            'file_name': file_name,
            'file_size': file_size,
            'enhancement': enhancement,
            'corners': [list(p) for p in corners],
            'processed_bytes': processed_bytes,
            'original_bytes': original_bytes,
            'thumbnail_bytes': thumbnail_bytes(processed_bytes),
            'created_at': existing['created_at'] if existing else (created_at or timestamp),
            'updated_at': timestamp,
        }
        self._documents[document_id] = record
        return dict(record)

    def get_document(self, document_id: str, include_images: bool = True) -> Optional[Dict[str, Any]]:
        record = self._documents.get(document_id)
        if record is None:
            return None
        record = dict(record)
        if not include_images:
            record.pop('processed_bytes')
            record.pop('original_bytes')
        return record

    def list_documents(self) -> List[Dict[str, Any]]:
        """All documents, newest first, without the full-size images."""
        documents = [self.get_document(doc_id, include_images=False) for doc_id in self._documents]
        documents.sort(key=lambda d: d.get('created_at', ''), reverse=True)
        return documents

    def delete_document(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None


class DocumentDatabase:
    """Handles all DynamoDB + S3 operations for scanned documents."""

    def __init__(
        self,
        table_name: str = "DocumentScans",
        bucket_name: Optional[str] = None,
        region_name: str = "us-east-1",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        use_local: bool = False
    ):
        """
        Initialize DynamoDB and S3 connections.

        Args:
            table_name: Name of the DynamoDB table
            bucket_name: Name of the S3 bucket (defaults to table_name + '-images')
            region_name: AWS region
            aws_access_key_id: AWS access key (optional, uses env vars if not provided)
            aws_secret_access_key: AWS secret key (optional, uses env vars if not provided)
            use_local: If True, use a local DynamoDB instance and keep images in the table
        """
        self.table_name = table_name
        self.bucket_name = bucket_name or os.environ.get('S3_BUCKET') or f"{table_name.lower()}-images"
        self.region_name = region_name

        session_kwargs = {'region_name': region_name}
        if aws_access_key_id and aws_secret_access_key:
            session_kwargs['aws_access_key_id'] = aws_access_key_id
            session_kwargs['aws_secret_access_key'] = aws_secret_access_key

        if use_local:
            self.dynamodb = boto3.resource(
                'dynamodb',
                endpoint_url='http://localhost:8000',
                region_name=region_name,
                aws_access_key_id='dummy',
                aws_secret_access_key='dummy'
            )
            self.s3 = None  # No S3 in local mode
            self.use_s3 = False
        else:
            self.dynamodb = boto3.resource('dynamodb', **session_kwargs)
            self.s3 = boto3.client('s3', **session_kwargs)
            self.use_s3 = True

        self.table = self.dynamodb.Table(table_name)

    def create_table_if_not_exists(self) -> bool:
        """
        Create the documents table and S3 bucket if they don't exist.

        Returns:
            True if resources were created, False if they already existed
        """
        created = False

        try:
            self.table.load()
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                raise
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': 'document_id', 'KeyType': 'HASH'}
                ],
                AttributeDefinitions=[
                    {'AttributeName': 'document_id', 'AttributeType': 'S'}
                ],
                BillingMode='PAY_PER_REQUEST'
            )
            table.wait_until_exists()
            self.table = table
            created = True
            logger.info("Created DynamoDB table %s", self.table_name)

        if self.use_s3 and self.s3:
            try:
                self.s3.head_bucket(Bucket=self.bucket_name)
            except ClientError as e:
                if e.response['Error']['Code'] != '404':
                    raise
                if self.region_name == 'us-east-1':
                    self.s3.create_bucket(Bucket=self.bucket_name)
                else:
                    self.s3.create_bucket(
                        Bucket=self.bucket_name,
                        CreateBucketConfiguration={
                            'LocationConstraint': self.region_name
                        }
                    )
                created = True
                logger.info("Created S3 bucket %s", self.bucket_name)

        return created

    def _key(self, document_id: str, image_type: str) -> str:
        return f"documents/{document_id}/{image_type}"

    def _upload_to_s3(self, document_id: str, image_type: str, image_bytes: bytes) -> str:
        """Upload image bytes to S3 and return the key."""
        key = self._key(document_id, image_type)
        self.s3.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=image_bytes,
            ContentType=_content_type(image_bytes)
        )
        return key

    def _download_from_s3(self, key: str) -> Optional[bytes]:
        """Download an object from S3, None if it is missing."""
        if not self.use_s3 or not self.s3 or not key:
            return None

        try:
            response = self.s3.get_object(Bucket=self.bucket_name, Key=key)
            return response['Body'].read()
        except ClientError as e:
            logger.warning("Could not fetch s3://%s/%s: %s", self.bucket_name, key, e)
            return None

    def _delete_from_s3(self, document_id: str):
        """Delete all images for a document from S3."""
        if not self.use_s3 or not self.s3:
            return

        prefix = f"documents/{document_id}/"
        response = self.s3.list_objects_v2(Bucket=self.bucket_name, Prefix=prefix)
        if 'Contents' in response:
            objects = [{'Key': obj['Key']} for obj in response['Contents']]
            self.s3.delete_objects(
                Bucket=self.bucket_name,
                Delete={'Objects': objects}
            )

    def save_document(
        self,
        document_id: str,
        processed_bytes: bytes,
        original_bytes: bytes,
        corners: List[List[float]],
        enhancement: str,
        file_name: str,
        file_size: int,
        created_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Save a document - images to S3, metadata to DynamoDB.

        Args:
            document_id: Unique identifier for the document
            processed_bytes: Rectified and enhanced image (PNG)
            original_bytes: Uploaded file as received
            corners: Final corner set [[x, y], ...] in TL, TR, BR, BL order
            enhancement: Enhancement mode applied to the processed image
            file_name: Original file name
            file_size: Original file size in bytes
            created_at: ISO timestamp of the upload (defaults to now)

        Returns:
            The saved item metadata plus the image bytes
        """
        timestamp = _timestamp()
        thumb = thumbnail_bytes(processed_bytes)

        # Floats are not valid DynamoDB numbers, so corners go in as JSON
        item = {
            'document_id': document_id,
            'file_name': file_name,
            'file_size': file_size,
            'enhancement': enhancement,
            'corners': json.dumps(corners),
            'created_at': created_at or timestamp,
            'updated_at': timestamp
        }

        if self.use_s3:
            item['processed_key'] = self._upload_to_s3(document_id, 'processed.png', processed_bytes)
            item['thumbnail_key'] = self._upload_to_s3(document_id, 'thumbnail.png', thumb)
            item['original_key'] = self._upload_to_s3(document_id, 'original', original_bytes)
        else:
            # Local DynamoDB: keep images inline
            item['processed_base64'] = bytes_to_base64(processed_bytes)
            item['thumbnail_base64'] = bytes_to_base64(thumb)
            item['original_base64'] = bytes_to_base64(original_bytes)

        self.table.put_item(Item=item)
        logger.info("Stored document %s (%s)", document_id, file_name)

        record = self._from_item(item)
        record['processed_bytes'] = processed_bytes
        record['original_bytes'] = original_bytes
        record['thumbnail_bytes'] = thumb
        return record

    def _from_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        record = {
            k: v for k, v in item.items()
            if not k.endswith('_base64') and not k.endswith('_key')
        }
        record['corners'] = json.loads(item.get('corners', '[]'))
        if 'file_size' in record:
            # DynamoDB returns numbers as Decimal
            record['file_size'] = int(record['file_size'])
        return record

    def _load_image(self, item: Dict[str, Any], image_type: str) -> Optional[bytes]:
        if self.use_s3:
            return self._download_from_s3(item.get(f'{image_type}_key', ''))
        encoded = item.get(f'{image_type}_base64')
        return base64_to_bytes(encoded) if encoded else None

    def get_document(self, document_id: str, include_images: bool = True) -> Optional[Dict[str, Any]]:
        """
        Retrieve a single document by ID.

        Args:
            document_id: The document's unique identifier
            include_images: Whether to fetch the full-size images

        Returns:
            Document data or None if not found
        """
        try:
            response = self.table.get_item(Key={'document_id': document_id})
        except ClientError as e:
            logger.warning("Could not load document %s: %s", document_id, e)
            return None

        item = response.get('Item')
        if not item:
            return None

        record = self._from_item(item)
        record['thumbnail_bytes'] = self._load_image(item, 'thumbnail')
        if include_images:
            record['processed_bytes'] = self._load_image(item, 'processed')
            record['original_bytes'] = self._load_image(item, 'original')
        return record

    def list_documents(self) -> List[Dict[str, Any]]:
        """
        Retrieve all documents with thumbnails, newest first.

        Returns:
            List of document records
        """
        items = []
        response = self.table.scan()
        items.extend(response.get('Items', []))

        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))

        documents = []
        for item in items:
            record = self._from_item(item)
            record['thumbnail_bytes'] = self._load_image(item, 'thumbnail')
            documents.append(record)

        documents.sort(key=lambda x: x.get('created_at', ''), reverse=True)
        return documents

    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document from both DynamoDB and S3.

        Returns:
            True if successful
        """
        try:
            self._delete_from_s3(document_id)
            self.table.delete_item(Key={'document_id': document_id})
            return True
        except ClientError as e:
            logger.error("Could not delete document %s: %s", document_id, e)
            return False
