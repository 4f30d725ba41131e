"""External delivery transports: QStash scheduling/messaging and Redis pub/sub notifications."""
