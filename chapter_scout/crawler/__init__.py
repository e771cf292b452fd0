"""Network side of ChapterScout: transports, fetch gateway, prober and chapter crawler."""
