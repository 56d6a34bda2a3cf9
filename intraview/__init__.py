"""IntraView console: realtime voice interview session controller"""
