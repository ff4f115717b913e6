"""
NutriVision food analysis service.

Turns a photo of a food item into a nutrient report and a health label,
and keeps every analysis as a per-user history record.

Structure:
- domain/: Candidates, nutrient records, health strategies, ports
- application/: Nutrient resolution and the analysis pipeline
- infrastructure/: Classifier, USDA, image storage and record storage adapters
- metrics/: In-process counters and histograms
- api/: HTTP surface over the pipeline
"""

__version__ = "1.0.0"
