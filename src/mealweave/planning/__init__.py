"""Template planning: weekly rules, tiered pools, preference scoring and weekly assembly."""
