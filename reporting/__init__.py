"""
Reporting module for the sales report tool
Chart rasterization, PDF assembly and the output pipeline
"""

from .charts import ChartRasterizer
from .pdf_generator import ReportAssembler
from .pipeline import ReportPipeline

__all__ = ['ChartRasterizer', 'ReportAssembler', 'ReportPipeline']
