"""Engine orchestration: settings, match and claim lifecycles"""
