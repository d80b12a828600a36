"""
Unchive core package.

Reads App Inventor project containers (.aia) and extension packages (.aix)
into a read-only project model: screens with resolved component trees,
extension descriptors, and assets. Around that core sit a SQL repository,
a Whoosh component index, and a worker that drives ingest jobs through
precheck, archive ingestion, DB ingestion, and indexing phases.
"""
