"""Registry-driven type system, model factory, diagram-type catalog and validator."""
