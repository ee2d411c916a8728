"""riskguard services.

- safety_service: three-layer comment check and the admin HTTP surface
- llm_service: provider abstraction for Layer 3
- audit_service: append-only assessments and moderation pointers
- review_service: held-comment queue and reviewer actions
- training_service: reviewed assessments into fine-tuning data
- corpus_service: curated reference examples for Layer 2
"""
