"""
Utility subpackage for the risk engine:
- config_loader   → defaults <- YAML <- JSON overrides
- geospatial      → region predicates (desert/polar/coastal/tropical/mountain) & clamps
- logging_utils   → unified logger setup (console / file / JSONL)
"""
