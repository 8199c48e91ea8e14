"""HTTP API for the CV analyzer."""
