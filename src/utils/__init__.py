"""Utils layer: 재시도 등 공용 유틸리티."""
