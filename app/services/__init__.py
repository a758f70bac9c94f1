"""
Services layer - triage logic lives here, NOT in routes.

- boundary_index: ward/district resolution from static GeoJSON
- duplicate_detection: embedding similarity search and merges
- severity_scoring: system-derived priority score
- triage_service: composes the above for the HTTP layer
- report_store: the persistence interface everything reads and writes through
"""
