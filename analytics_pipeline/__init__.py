"""
Analytics ingestion pipeline.

Scheduled workers that drain analytics report messages from Kafka, keep raw
audit copies, normalize report rows and fan them out to PostgreSQL, Firestore,
BigQuery or the JDBC sink service.
"""

__version__ = "0.1.0"
