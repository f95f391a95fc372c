"""
Electronic documents for DIAN compliance via the MATIAS provider.

Turns completed point-of-sale transactions into legal electronic documents
(POS-equivalent document, invoice, credit and debit notes) with gapless
numbering per resolution and per-tenant monthly quotas.

Components:
- settings: Configurable settings and DIAN/MATIAS constants
- models: Provider configuration, sequence counters, document queue, usage
- sequence: Concurrency-safe legal number allocation
- quota: Monthly quota checks against the tenant's document package
- payloads: MATIAS payloads built from POS records
- client: MATIAS API client with cached token authentication
- queue: enqueue, manual retry and status reads
- worker: Submission of queued documents and outcome handling
- usage: Monthly usage metering of accepted documents
- tasks: Django-Q2 tasks and schedules
- metrics: Prometheus metrics collection
"""
