"""Sheet to Firebase synchronization of lab requests, assignments and slots."""
