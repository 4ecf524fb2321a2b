"""
Permissionless Oracle
=====================

A consensus-and-discovery engine that answers prediction-market questions
("Will BTC exceed $100K?") by querying independent, unregistered data
providers and deriving a single auditable outcome.

Layers:
- domain: Entities, results, errors and the engine services
  (SourceCatalog, ReputationTracker, DiscoveryEngine, ConsensusEngine, ProofChain)
- ports: Abstract interfaces (Classifier, DirectorySearch, Fetcher, PaymentAuthorizer)
- adapters: Concrete implementations for external services
- infrastructure: Config, DI wiring, entrypoint
- api: FastAPI routes and request/response schemas
"""

__version__ = "0.1.0"
