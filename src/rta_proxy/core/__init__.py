"""
Core business logic components.

This package contains the forwarding components:
- Allow-list snapshots, loading and periodic reload
- pub_id authorization
- Upstream forwarder and forwarding pipeline
- Audit log sink
- Metrics collection
"""
