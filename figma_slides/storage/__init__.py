"""
Storage services for the slide library.

Minimal wrappers for MongoDB and S3.
"""

from .mongodb import MongoDBService, get_mongo_service
from .s3 import S3Service, get_s3_service

__all__ = [
    'MongoDBService',
    'S3Service',
    'get_mongo_service',
    'get_s3_service',
]
