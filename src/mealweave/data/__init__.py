"""Reference data: units, constraint ontology, macro densities and the template catalog."""
