"""User interface modules for LeadMerge."""
