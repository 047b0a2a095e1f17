"""
scriptreel — topic → short video scripts → HeyGen talking-head video.
"""
