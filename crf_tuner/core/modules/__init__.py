# Core modules for crf_tuner
